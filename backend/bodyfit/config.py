"""Pipeline tunables.

Every threshold and body-ratio constant used by the keypoint-to-geometry
pipeline lives here so a host can override it from the environment.
"""
import os
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class PipelineConfig:
    """Frozen set of pipeline constants."""

    # Reference frame the keypoints are expressed in
    frame_width_px: int = 640
    frame_height_px: int = 480

    # Pose quality gate
    min_confidence: float = 0.3
    too_far_shoulder_px: float = 60.0
    too_close_shoulder_px: float = 220.0

    # Stability filter
    window_size: int = 10
    variance_threshold: float = 5.0
    reset_on_capture: bool = False

    # Heuristic body ratios (approximations, not anthropometric data)
    chest_px_ratio: float = 1.3
    chest_cm_ratio: float = 1.25
    waist_cm_ratio: float = 0.9
    hip_cm_ratio: float = 1.15
    fallback_body_height_px: float = 400.0

    # Orientation inference
    side_nose_ratio: float = 0.4
    back_shoulder_hip_ratio: float = 0.8

    # Landmark interpolation
    chest_drop_ratio: float = 0.4
    chest_expand_ratio: float = 0.15

    # Joint synthesis offsets (outward x, downward y) in pixels
    arm_offset_x: float = 30.0
    arm_offset_y: float = 60.0
    leg_offset_x: float = 10.0
    leg_offset_y: float = 100.0

    # Garment grids
    upper_bulge_px: float = 8.0
    dress_bulge_px: float = 8.0
    leg_bulge_px: float = 6.0
    dress_top_width_ratio: float = 1.45
    dress_bottom_width_ratio: float = 1.85
    dress_fallback_hem_ratio: float = 2.5

    # Shading passes
    cylinder_band: float = 0.15
    cylinder_strength: float = 0.18
    side_shade_opacity: float = 0.25
    side_shade_darkness: float = 0.45

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, prefix: str = "BODYFIT_") -> "PipelineConfig":
        """Build a config from ``BODYFIT_<FIELD>`` environment variables.

        Unset variables keep their defaults. Values are coerced to the type of
        the field's default.
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        overrides = {}
        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None or raw == "":
                continue
            current = getattr(defaults, f.name)
            if isinstance(current, bool):
                overrides[f.name] = _env_bool(raw)
            elif isinstance(current, int):
                overrides[f.name] = int(raw)
            else:
                overrides[f.name] = float(raw)
        return replace(defaults, **overrides)


DEFAULT_CONFIG = PipelineConfig()
