"""BodyFit backend.

FastAPI application exposing the keypoint-to-geometry pipeline:
- Pose quality feedback for single frames
- Measurement sessions with stability-gated capture
- Body mesh and garment control grid construction
- Garment try-on rendering onto an uploaded frame

Keypoints are supplied by the client (any 2D pose estimator); this service
never runs pose detection itself.
"""

import os
import json
import math
import uuid
import time
import logging
from datetime import datetime
from typing import Dict

from dotenv import load_dotenv
from fastapi import FastAPI, UploadFile, File, HTTPException, Request, Form
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from bodyfit.body_mesh import BodyGeometryBuilder
from bodyfit.config import PipelineConfig
from bodyfit.garment_mesh import GarmentCategory, generate_garment_mesh
from bodyfit.keypoints import KeypointFrame
from bodyfit.quality import QUALITY_HINTS, classify_pose
from bodyfit.renderer import render_garment
from bodyfit.session import MeasurementSession
from bodyfit_utils import postprocess, preprocess


# ============================================================================
# CONFIGURATION
# ============================================================================

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "BodyFit")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_FILE = os.getenv("LOG_FILE")

PIPELINE_CONFIG = PipelineConfig.from_env()


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

_handlers = [logging.StreamHandler()]
if LOG_FILE:
    os.makedirs(os.path.dirname(LOG_FILE) or ".", exist_ok=True)
    _handlers.append(logging.FileHandler(LOG_FILE))

logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=_handlers,
)

logger = logging.getLogger(__name__)


# ============================================================================
# MIDDLEWARE
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing information."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"Response: {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")
        return response


# ============================================================================
# INITIALIZE FASTAPI APP
# ============================================================================

app = FastAPI(
    title=APP_NAME,
    description="Body measurement capture and garment try-on from 2D pose keypoints",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent format."""
    logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "error": {
                "code": exc.status_code,
                "message": exc.detail,
                "path": str(request.url.path),
            }
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=422,
        content={
            "status": "error",
            "error": {
                "code": 422,
                "message": "Validation error",
                "details": errors,
            }
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error on {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "error": {
                "code": 500,
                "message": "Internal server error" if not DEBUG else str(exc),
            }
        }
    )


# ============================================================================
# GLOBAL SESSION STORAGE
# ============================================================================

# In-memory session storage, one client per session
SESSIONS: Dict[str, Dict] = {}


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_session(session_id: str) -> MeasurementSession:
    """Get session or raise error."""
    if not isinstance(session_id, str) or session_id not in SESSIONS:
        raise HTTPException(
            status_code=404,
            detail="Invalid session_id. Please create a measurement session first."
        )
    return SESSIONS[session_id]["session"]


async def read_payload(request: Request) -> Dict:
    """Parse a JSON object body or raise a 400."""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Request body must be valid JSON.")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object.")
    return payload


def parse_frame(payload: Dict) -> KeypointFrame:
    """Build a keypoint frame from ``keypoints`` (named) or ``landmarks`` (MediaPipe)."""
    try:
        if "keypoints" in payload:
            keypoints = payload["keypoints"]
            if not isinstance(keypoints, list):
                raise ValueError("'keypoints' must be a list")
            return KeypointFrame.from_list(keypoints)
        if "landmarks" in payload:
            landmarks = payload["landmarks"]
            if not isinstance(landmarks, list):
                raise ValueError("'landmarks' must be a list")
            return KeypointFrame.from_landmarks(landmarks)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid keypoints: {e}")
    raise HTTPException(status_code=400, detail="Missing 'keypoints' in payload.")


def parse_height(value) -> float:
    """Validate a body height in centimetres."""
    try:
        height_cm = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="height_cm must be a number.")
    if not math.isfinite(height_cm) or height_cm <= 0:
        raise HTTPException(status_code=400, detail="height_cm must be a positive finite number.")
    return height_cm


def parse_category(value) -> GarmentCategory:
    """Validate a garment category."""
    try:
        return GarmentCategory(value)
    except ValueError:
        valid = ", ".join(c.value for c in GarmentCategory)
        raise HTTPException(status_code=400, detail=f"category must be one of: {valid}")


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
def root():
    """Health check endpoint.

    Returns basic information about the API status and version.
    """
    logger.info("Health check accessed")
    return {
        "status": "ok",
        "message": f"{APP_NAME} backend is running",
        "version": APP_VERSION,
        "endpoints": {
            "docs": "/docs",
            "quality": "/pose/quality",
            "session": "/measure/session",
            "frame": "/measure/frame",
            "export": "/measure/session/{session_id}/export",
            "body_mesh": "/mesh/body",
            "garment_mesh": "/mesh/garment",
            "tryon": "/tryon",
        }
    }


@app.post("/pose/quality")
async def pose_quality(request: Request):
    """Classify a keypoint frame's usefulness for measurement.

    Args:
        request: JSON body containing ``keypoints``

    Returns:
        JSONResponse with the quality tag and a user-facing hint
    """
    payload = await read_payload(request)
    frame = parse_frame(payload)
    quality = classify_pose(frame, PIPELINE_CONFIG)
    return JSONResponse({
        "status": "ok",
        "quality": quality.value,
        "hint": QUALITY_HINTS[quality],
    })


@app.post("/measure/session")
async def create_session(request: Request):
    """Create a measurement session.

    Args:
        request: JSON body containing:
            - mode: "manual" (user height) or "reference" (held object height)
            - reference_cm: the known length in centimetres

    Returns:
        JSONResponse with session_id and calibration status

    Raises:
        HTTPException: If the mode is unknown or the length out of range
    """
    payload = await read_payload(request)
    mode = payload.get("mode", "manual")
    reference_cm = payload.get("reference_cm")

    try:
        session = MeasurementSession(mode, reference_cm, PIPELINE_CONFIG)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    session_id = str(uuid.uuid4())
    SESSIONS[session_id] = {
        "session": session,
        "created_at": datetime.utcnow().isoformat() + "Z",
    }
    logger.info(f"Session created: session_id={session_id}, mode={session.mode.value}")

    return JSONResponse({
        "status": "ok",
        "session_id": session_id,
        "calibration": session.scale.get_calibration_status(),
    })


@app.post("/measure/session/{session_id}/start")
def start_session(session_id: str):
    """Arm capturing for a session."""
    session = get_session(session_id)
    session.start_capture()
    return JSONResponse({"status": "ok", "capturing": session.capturing})


@app.post("/measure/session/{session_id}/reset")
def reset_session(session_id: str):
    """Clear the session's measurement and stability window."""
    session = get_session(session_id)
    session.reset()
    logger.info(f"Session reset: {session_id}")
    return JSONResponse({"status": "ok", "capturing": session.capturing})


@app.post("/measure/frame")
async def measure_frame(request: Request):
    """Feed one keypoint frame into a measurement session.

    Args:
        request: JSON body containing:
            - session_id: Session ID from /measure/session
            - keypoints: keypoints for the frame

    Returns:
        JSONResponse with quality, capture state, stability report and the
        measurement once it has been emitted
    """
    payload = await read_payload(request)
    session = get_session(payload.get("session_id"))
    frame = parse_frame(payload)

    result = session.process_frame(frame)
    body = result.to_dict()
    body["status"] = "ok"
    body["hint"] = QUALITY_HINTS[result.quality]
    return JSONResponse(body)


@app.get("/measure/session/{session_id}/export")
def export_measurement(session_id: str, unit: str = "cm"):
    """Export the captured measurement as a flat JSON object.

    Raises:
        HTTPException: If nothing has been captured yet or the unit is unknown
    """
    session = get_session(session_id)
    if session.measurement is None:
        raise HTTPException(
            status_code=400,
            detail="No measurement captured yet. Hold still until capture completes."
        )
    try:
        return JSONResponse(postprocess.format_measurement_for_client(session.measurement, unit))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/measure/session/{session_id}")
def delete_session(session_id: str):
    """Drop a session and its stability window."""
    get_session(session_id)
    del SESSIONS[session_id]
    logger.info(f"Session deleted: {session_id}")
    return JSONResponse({"status": "ok", "deleted": session_id})


@app.post("/mesh/body")
async def body_mesh(request: Request):
    """Build the body mesh for one frame.

    Args:
        request: JSON body containing ``keypoints`` and ``height_cm``

    Returns:
        JSONResponse with the mesh, or ``mesh: null`` without both shoulders
    """
    payload = await read_payload(request)
    frame = parse_frame(payload)
    height_cm = parse_height(payload.get("height_cm"))

    mesh = BodyGeometryBuilder(PIPELINE_CONFIG).build(frame, height_cm)
    return JSONResponse({
        "status": "ok",
        "mesh": mesh.to_dict() if mesh else None,
    })


@app.post("/mesh/garment")
async def garment_mesh(request: Request):
    """Build garment control grids for one frame.

    Args:
        request: JSON body containing ``keypoints``, ``height_cm`` and ``category``

    Returns:
        JSONResponse with zero or more grids
    """
    payload = await read_payload(request)
    frame = parse_frame(payload)
    height_cm = parse_height(payload.get("height_cm"))
    category = parse_category(payload.get("category"))

    mesh = BodyGeometryBuilder(PIPELINE_CONFIG).build(frame, height_cm)
    grids = generate_garment_mesh(mesh, category, PIPELINE_CONFIG) if mesh else ()
    body = postprocess.format_grids_for_client(grids, category.value)
    body["status"] = "ok"
    return JSONResponse(body)


@app.post("/tryon")
async def tryon(
    image: UploadFile = File(...),
    garment: UploadFile = File(...),
    keypoints: str = Form(...),
    height_cm: str = Form(...),
    category: str = Form(GarmentCategory.UPPER_BODY.value),
):
    """Render a garment onto a frame.

    Args:
        image: camera frame the keypoints were detected on
        garment: flat garment image (PNG with alpha, or on white background)
        keypoints: JSON-encoded keypoint list
        height_cm: the user's total height
        category: upper_body, dress or lower_body

    Returns:
        JPEG of the rendered frame; quad counts in the X-Quads-* headers
    """
    try:
        frame = parse_frame({"keypoints": json.loads(keypoints)})
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="keypoints must be a JSON-encoded list.")
    height = parse_height(height_cm)
    garment_category = parse_category(category)

    try:
        surface = preprocess.bytes_to_cv2(await image.read())
        texture = preprocess.bytes_to_bgra(await garment.read())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    mesh = BodyGeometryBuilder(PIPELINE_CONFIG).build(frame, height)
    if mesh is None:
        raise HTTPException(
            status_code=400,
            detail="Could not find both shoulders. Please ensure the upper body is visible."
        )

    result = render_garment(surface, mesh, texture, garment_category, PIPELINE_CONFIG)
    logger.info(f"Try-on rendered ({garment_category.value}): {result.drawn} drawn, {result.dropped} dropped")

    return Response(
        content=preprocess.cv2_to_jpeg(surface),
        media_type="image/jpeg",
        headers={
            "X-Quads-Drawn": str(result.drawn),
            "X-Quads-Dropped": str(result.dropped),
        },
    )


# ============================================================================
# APPLICATION STARTUP
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")
    logger.info(f"Debug mode: {DEBUG}")
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
        log_level="debug" if DEBUG else "info"
    )
