"""Pixel measurement extraction from a keypoint frame.

All four values are heuristics derived from 2D keypoints, not anthropometric
ground truth:

- shoulder width: Euclidean distance between the shoulders
- torso height: mean hip y minus mean shoulder y
- full height: lowest keypoint in the frame minus the nose y
- chest: shoulder width times a fixed ratio (1.3 by default)
"""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit.keypoints import KeypointFrame
from bodyfit_utils.geometry import GeometryCalculator

CM_PER_INCH = 2.54


@dataclass(frozen=True)
class PixelMeasurementSet:
    """Four pixel measurements taken from a single frame."""

    shoulder_width_px: float
    torso_height_px: float
    full_height_px: float
    chest_px: float

    FIELDS = ("shoulder_width_px", "torso_height_px", "full_height_px", "chest_px")

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.shoulder_width_px, self.torso_height_px, self.full_height_px, self.chest_px)

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(self.FIELDS, self.as_tuple()))


def extract_pixel_measurements(
    frame: KeypointFrame,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Optional[PixelMeasurementSet]:
    """Compute a :class:`PixelMeasurementSet` or None.

    Extraction is purely geometric: joints are used regardless of their
    confidence. Returns None when any of nose, shoulders or hips is missing.
    """
    if len(frame) == 0:
        return None

    joints = frame.resolve()
    ls, rs = joints.left_shoulder, joints.right_shoulder
    lh, rh = joints.left_hip, joints.right_hip
    nose = joints.nose
    if ls is None or rs is None or lh is None or rh is None or nose is None:
        return None

    shoulder_width_px = GeometryCalculator.distance_2d(ls, rs)
    torso_height_px = (lh.y + rh.y) / 2 - (ls.y + rs.y) / 2
    full_height_px = max(nose.y, frame.max_y()) - nose.y
    chest_px = shoulder_width_px * config.chest_px_ratio

    return PixelMeasurementSet(
        shoulder_width_px=shoulder_width_px,
        torso_height_px=torso_height_px,
        full_height_px=full_height_px,
        chest_px=chest_px,
    )


def _fmt(value: float) -> str:
    return f"{value:.1f}"


@dataclass(frozen=True)
class MeasurementRecord:
    """Emitted measurement in centimetres, formatted to one decimal place."""

    shoulder_cm: str
    torso_cm: str
    full_height_cm: str
    chest_cm: str

    @classmethod
    def from_centimetres(cls, shoulder: float, torso: float, full_height: float, chest: float) -> "MeasurementRecord":
        return cls(_fmt(shoulder), _fmt(torso), _fmt(full_height), _fmt(chest))

    def to_dict(self) -> Dict[str, str]:
        """Flat JSON object used for file export."""
        return {
            "shoulderCm": self.shoulder_cm,
            "torsoCm": self.torso_cm,
            "fullHeightCm": self.full_height_cm,
            "chestCm": self.chest_cm,
        }

    def to_inches(self) -> Dict[str, str]:
        return {
            key.replace("Cm", "In"): _fmt(float(value) / CM_PER_INCH)
            for key, value in self.to_dict().items()
        }
