"""Image decoding helpers for the service boundary."""
from io import BytesIO

import cv2
import numpy as np
from PIL import Image

# Grey level above which a pixel of an opaque garment photo counts as background
WHITE_BACKGROUND_LEVEL = 240


def bytes_to_cv2(image_bytes: bytes) -> np.ndarray:
    arr = np.frombuffer(image_bytes, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("Could not decode image bytes to cv2 image")
    return img


def bytes_to_pil(image_bytes: bytes) -> Image.Image:
    try:
        return Image.open(BytesIO(image_bytes)).convert('RGBA')
    except (OSError, ValueError) as e:
        raise ValueError(f"Could not decode garment image: {e}")


def alpha_from_white_background(bgr: np.ndarray) -> np.ndarray:
    """Derive an alpha mask for a garment shot on a white background."""
    gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    _, alpha = cv2.threshold(gray, WHITE_BACKGROUND_LEVEL, 255, cv2.THRESH_BINARY_INV)
    return cv2.GaussianBlur(alpha, (5, 5), 0)


def bytes_to_bgra(image_bytes: bytes) -> np.ndarray:
    """Decode a garment texture into a BGRA uint8 array.

    PNGs with transparency keep their alpha channel. Fully opaque images get
    an alpha mask cut from their white background.
    """
    rgba = np.asarray(bytes_to_pil(image_bytes), dtype=np.uint8)
    bgra = cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA)
    if bgra[:, :, 3].min() == 255:
        bgra[:, :, 3] = alpha_from_white_background(bgra[:, :, :3])
    return bgra


def cv2_to_jpeg(img: np.ndarray, quality: int = 90) -> bytes:
    ok, buf = cv2.imencode('.jpg', img, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("Could not encode image as JPEG")
    return buf.tobytes()
