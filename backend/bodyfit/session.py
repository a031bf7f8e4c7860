"""Measurement capture session.

Wires the quality gate, pixel extraction, stability filter and scale resolver
together for one user. The stability window is the only state that survives
across frames; it belongs to the session and is touched from the per-frame
call only.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from bodyfit.calibration import CalibrationMode, ScaleResolver, validate_reference_length
from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit.keypoints import KeypointFrame
from bodyfit.measurements import MeasurementRecord, PixelMeasurementSet, extract_pixel_measurements
from bodyfit.quality import PoseQuality, classify_pose
from bodyfit.stability import StabilityFilter, StabilityReport

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"            # not capturing
    REJECTED = "rejected"    # frame not usable for measurement
    COLLECTING = "collecting"
    UNSTABLE = "unstable"    # window full but variance too high
    MEASURED = "measured"


@dataclass(frozen=True)
class FrameResult:
    quality: PoseQuality
    state: CaptureState
    stability: Optional[StabilityReport] = None
    measurement: Optional[MeasurementRecord] = None

    def to_dict(self) -> Dict:
        return {
            "quality": self.quality.value,
            "state": self.state.value,
            "stability": self.stability.to_dict() if self.stability else None,
            "measurement": self.measurement.to_dict() if self.measurement else None,
        }


class MeasurementSession:
    """One capture session with a fixed calibration."""

    def __init__(
        self,
        mode,
        reference_cm: float,
        config: PipelineConfig = DEFAULT_CONFIG,
        reset_on_capture: Optional[bool] = None,
    ):
        self.config = config
        self.reference_cm = validate_reference_length(mode, reference_cm)
        self.mode = CalibrationMode(mode)
        self.scale = ScaleResolver(self.reference_cm, config.frame_height_px, self.mode)
        self.filter = StabilityFilter(config.window_size, config.variance_threshold)
        self.reset_on_capture = config.reset_on_capture if reset_on_capture is None else reset_on_capture
        self.capturing = False
        self.measurement: Optional[MeasurementRecord] = None
        self.last_quality: Optional[PoseQuality] = None

    def start_capture(self) -> None:
        self.capturing = True
        logger.info(f"Capture started ({self.mode.value}, reference {self.reference_cm} cm)")

    def reset(self) -> None:
        """Forget the measurement and start over with an empty window."""
        self.measurement = None
        self.capturing = False
        self.last_quality = None
        self.filter.reset()

    def to_centimetres(self, pixels: PixelMeasurementSet) -> MeasurementRecord:
        return MeasurementRecord.from_centimetres(
            shoulder=self.scale.pixels_to_cm(pixels.shoulder_width_px),
            torso=self.scale.pixels_to_cm(pixels.torso_height_px),
            full_height=self.scale.pixels_to_cm(pixels.full_height_px),
            chest=self.scale.pixels_to_cm(pixels.chest_px),
        )

    def process_frame(self, frame: KeypointFrame) -> FrameResult:
        """Run one frame through the measurement path.

        Quality is reported for every frame. A sample only enters the window
        while capturing and when the pose is good.
        """
        quality = classify_pose(frame, self.config)
        self.last_quality = quality

        if not self.capturing:
            return FrameResult(quality=quality, state=CaptureState.IDLE)

        if quality is not PoseQuality.GOOD:
            logger.debug(f"Pose not good enough, quality: {quality.value}")
            return FrameResult(quality=quality, state=CaptureState.REJECTED)

        pixels = extract_pixel_measurements(frame, self.config)
        if pixels is None:
            logger.debug("Could not extract pixel measurements")
            return FrameResult(quality=quality, state=CaptureState.REJECTED)

        report = self.filter.push(pixels)
        if report.collecting:
            return FrameResult(quality=quality, state=CaptureState.COLLECTING, stability=report)
        if not report.stable:
            return FrameResult(quality=quality, state=CaptureState.UNSTABLE, stability=report)

        record = self.to_centimetres(self.filter.newest())
        self.measurement = record
        self.capturing = False
        if self.reset_on_capture:
            self.filter.reset()
        logger.info(f"Stable measurements achieved: {record.to_dict()}")
        return FrameResult(quality=quality, state=CaptureState.MEASURED, stability=report, measurement=record)
