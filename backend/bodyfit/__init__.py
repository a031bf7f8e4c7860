"""
Core package for BodyFit.

This package contains the keypoint-to-geometry pipeline:
- Pose quality classification
- Temporal stability filtering of pixel measurements
- Pixel to centimetre scale resolution
- Body mesh and garment control grid construction
- Piecewise quad warping of garment textures
"""

__version__ = "1.0.0"

from .config import PipelineConfig, DEFAULT_CONFIG
from .keypoints import JointName, Keypoint, KeypointFrame
from .quality import PoseQuality, classify_pose
from .measurements import MeasurementRecord, PixelMeasurementSet, extract_pixel_measurements
from .stability import StabilityFilter, StabilityReport
from .calibration import CalibrationMode, ScaleResolver, ScaleConfigurationError
from .session import CaptureState, MeasurementSession
from .body_mesh import BodyGeometryBuilder, BodyMesh, Orientation, build_body_mesh
from .garment_mesh import GarmentCategory, GarmentMeshGrid, generate_garment_mesh, limb_segments
from .renderer import MeshWarpRenderer, RenderResult, render_garment

__all__ = [
    "PipelineConfig",
    "DEFAULT_CONFIG",
    "JointName",
    "Keypoint",
    "KeypointFrame",
    "PoseQuality",
    "classify_pose",
    "MeasurementRecord",
    "PixelMeasurementSet",
    "extract_pixel_measurements",
    "StabilityFilter",
    "StabilityReport",
    "CalibrationMode",
    "ScaleResolver",
    "ScaleConfigurationError",
    "CaptureState",
    "MeasurementSession",
    "BodyGeometryBuilder",
    "BodyMesh",
    "Orientation",
    "build_body_mesh",
    "GarmentCategory",
    "GarmentMeshGrid",
    "generate_garment_mesh",
    "limb_segments",
    "MeshWarpRenderer",
    "RenderResult",
    "render_garment",
]
