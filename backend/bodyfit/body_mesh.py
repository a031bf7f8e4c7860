"""Body mesh construction from a single keypoint frame.

The mesh is the deformation basis for garment rendering: joint positions plus
interpolated chest/waist landmarks, synthesized limb joints where the detector
lost them, a coarse contour polygon and heuristic centimetre measurements.

Degraded-accuracy paths (fixed body-height estimate, synthesized joints) are
never errors; they are recorded in :class:`MeshDiagnostics`.
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit.keypoints import Keypoint, KeypointFrame, ResolvedJoints
from bodyfit_utils.geometry import GeometryCalculator, Point, as_point

logger = logging.getLogger(__name__)

geom = GeometryCalculator


class Orientation(str, Enum):
    FRONT = "front"
    BACK = "back"
    SIDE = "side"


@dataclass(frozen=True)
class LandmarkTriple:
    left: Point
    right: Point
    center: Point

    def to_dict(self) -> Dict:
        return {"left": list(self.left), "right": list(self.right), "center": list(self.center)}


@dataclass(frozen=True)
class Limb:
    """Three-joint chain: shoulder/elbow/wrist or hip/knee/ankle."""

    root: Point
    mid: Point
    end: Point

    def to_dict(self, names: Tuple[str, str, str]) -> Dict:
        return dict(zip(names, (list(self.root), list(self.mid), list(self.end))))


@dataclass(frozen=True)
class MeshDiagnostics:
    height_fallback: bool = False
    synthesized_joints: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        return self.height_fallback or bool(self.synthesized_joints)


@dataclass(frozen=True)
class BodyMesh:
    orientation: Orientation
    shoulders: LandmarkTriple
    chest: LandmarkTriple
    waist: Optional[LandmarkTriple]
    hips: Optional[LandmarkTriple]
    arms: Dict[str, Limb]
    legs: Optional[Dict[str, Limb]]
    contour: Tuple[Point, ...]
    measurements_cm: Dict[str, float]
    pixels_per_cm: float
    diagnostics: MeshDiagnostics = field(default_factory=MeshDiagnostics)

    @property
    def shoulder_width_px(self) -> float:
        return geom.distance_2d(self.shoulders.left, self.shoulders.right)

    def is_synthesized(self, joint_name: str) -> bool:
        return joint_name in self.diagnostics.synthesized_joints

    def to_dict(self) -> Dict:
        arm_names = ("shoulder", "elbow", "wrist")
        leg_names = ("hip", "knee", "ankle")
        return {
            "orientation": self.orientation.value,
            "shoulders": self.shoulders.to_dict(),
            "chest": self.chest.to_dict(),
            "waist": self.waist.to_dict() if self.waist else None,
            "hips": self.hips.to_dict() if self.hips else None,
            "arms": {side: limb.to_dict(arm_names) for side, limb in self.arms.items()},
            "legs": {side: limb.to_dict(leg_names) for side, limb in self.legs.items()} if self.legs else None,
            "contour": [list(p) for p in self.contour],
            "measurementsCm": {
                "shoulderWidthCm": self.measurements_cm["shoulder_width_cm"],
                "chestCm": self.measurements_cm["chest_cm"],
                "waistCm": self.measurements_cm["waist_cm"],
                "hipCm": self.measurements_cm["hip_cm"],
            },
            "pixelsPerCm": self.pixels_per_cm,
            "diagnostics": {
                "heightFallback": self.diagnostics.height_fallback,
                "synthesizedJoints": list(self.diagnostics.synthesized_joints),
            },
        }


def infer_orientation(joints: ResolvedJoints, config: PipelineConfig = DEFAULT_CONFIG) -> Optional[Orientation]:
    """Front/back/side from shoulder, nose and hip geometry.

    The side check wins over the back check. Returns None without shoulders.
    """
    ls, rs = joints.left_shoulder, joints.right_shoulder
    if ls is None or rs is None:
        return None

    shoulder_width = geom.distance_2d(ls, rs)
    shoulder_mid_x = (ls.x + rs.x) / 2

    if joints.nose is not None:
        if shoulder_width == 0:
            return Orientation.SIDE
        if abs(joints.nose.x - shoulder_mid_x) / shoulder_width > config.side_nose_ratio:
            return Orientation.SIDE

    if joints.left_hip is not None and joints.right_hip is not None:
        hip_width = geom.distance_2d(joints.left_hip, joints.right_hip)
        if shoulder_width < config.back_shoulder_hip_ratio * hip_width:
            return Orientation.BACK

    return Orientation.FRONT


def estimate_body_height_px(joints: ResolvedJoints, config: PipelineConfig = DEFAULT_CONFIG) -> Tuple[float, bool]:
    """Nose-to-ankle pixel height, or the fixed fallback.

    Returns:
        (height_px, used_fallback)
    """
    la, ra, nose = joints.left_ankle, joints.right_ankle, joints.nose
    if la is not None and ra is not None and nose is not None:
        height_px = abs((la.y + ra.y) / 2 - nose.y)
        if height_px > 0:
            return height_px, False
    return config.fallback_body_height_px, True


class BodyGeometryBuilder:
    """Builds a :class:`BodyMesh` from a keypoint frame and a known height."""

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG):
        self.config = config

    def build(self, frame: KeypointFrame, body_height_cm: float) -> Optional[BodyMesh]:
        """Construct the mesh, or None when either shoulder is missing.

        Args:
            frame: keypoints for one frame
            body_height_cm: the user's total height

        Raises:
            ValueError: if body_height_cm is not a positive finite number
        """
        if not math.isfinite(body_height_cm) or body_height_cm <= 0:
            raise ValueError("Body height must be a positive finite number")

        cfg = self.config
        joints = frame.resolve(min_confidence=cfg.min_confidence)
        ls, rs = joints.left_shoulder, joints.right_shoulder
        if ls is None or rs is None:
            logger.debug("Body mesh skipped: shoulders not detected")
            return None

        orientation = infer_orientation(joints, cfg)
        height_px, height_fallback = estimate_body_height_px(joints, cfg)
        if height_fallback:
            logger.debug(f"Ankles not visible, using fallback body height {height_px}px")
        pixels_per_cm = height_px / body_height_cm

        shoulder_width = geom.distance_2d(ls, rs)
        shoulder_mid = geom.midpoint(ls, rs)
        left_out = geom.outward_sign(ls.x, shoulder_mid[0], default=-1.0)
        right_out = geom.outward_sign(rs.x, shoulder_mid[0], default=1.0)

        shoulders = LandmarkTriple(ls.xy, rs.xy, shoulder_mid)

        drop = cfg.chest_drop_ratio * shoulder_width
        expand = cfg.chest_expand_ratio * shoulder_width
        chest_left = (ls.x + left_out * expand, ls.y + drop)
        chest_right = (rs.x + right_out * expand, rs.y + drop)
        chest = LandmarkTriple(chest_left, chest_right, geom.midpoint(chest_left, chest_right))

        lh, rh = joints.left_hip, joints.right_hip
        waist = hips = None
        if lh is not None and rh is not None:
            hips = LandmarkTriple(lh.xy, rh.xy, geom.midpoint(lh, rh))
            waist_left = geom.midpoint(ls, lh)
            waist_right = geom.midpoint(rs, rh)
            waist = LandmarkTriple(waist_left, waist_right, geom.midpoint(waist_left, waist_right))

        synthesized: List[str] = []
        arms = {
            "left": self._limb(ls, joints.left_elbow, joints.left_wrist, left_out,
                               cfg.arm_offset_x, cfg.arm_offset_y, cfg.arm_offset_x,
                               ("left_elbow", "left_wrist"), synthesized),
            "right": self._limb(rs, joints.right_elbow, joints.right_wrist, right_out,
                                cfg.arm_offset_x, cfg.arm_offset_y, cfg.arm_offset_x,
                                ("right_elbow", "right_wrist"), synthesized),
        }

        legs = None
        if hips is not None:
            hip_mid_x = hips.center[0]
            left_hip_out = geom.outward_sign(lh.x, hip_mid_x, default=left_out)
            right_hip_out = geom.outward_sign(rh.x, hip_mid_x, default=right_out)
            legs = {
                "left": self._limb(lh, joints.left_knee, joints.left_ankle, left_hip_out,
                                   cfg.leg_offset_x, cfg.leg_offset_y, 0.0,
                                   ("left_knee", "left_ankle"), synthesized),
                "right": self._limb(rh, joints.right_knee, joints.right_ankle, right_hip_out,
                                    cfg.leg_offset_x, cfg.leg_offset_y, 0.0,
                                    ("right_knee", "right_ankle"), synthesized),
            }

        contour_joints = (
            ls, joints.left_elbow, lh, joints.left_knee,
            joints.right_knee, rh, joints.right_elbow, rs,
        )
        contour = tuple(kp.xy for kp in contour_joints if kp is not None)

        measurements_cm = {
            "shoulder_width_cm": shoulder_width / pixels_per_cm,
            "chest_cm": cfg.chest_cm_ratio * shoulder_width / pixels_per_cm,
            "waist_cm": cfg.waist_cm_ratio * shoulder_width / pixels_per_cm,
            "hip_cm": cfg.hip_cm_ratio * shoulder_width / pixels_per_cm,
        }

        if synthesized:
            logger.debug(f"Synthesized joints: {synthesized}")

        return BodyMesh(
            orientation=orientation,
            shoulders=shoulders,
            chest=chest,
            waist=waist,
            hips=hips,
            arms=arms,
            legs=legs,
            contour=contour,
            measurements_cm=measurements_cm,
            pixels_per_cm=pixels_per_cm,
            diagnostics=MeshDiagnostics(height_fallback, tuple(synthesized)),
        )

    @staticmethod
    def _limb(
        root: Keypoint,
        mid: Optional[Keypoint],
        end: Optional[Keypoint],
        outward: float,
        mid_dx: float,
        dy: float,
        end_dx: float,
        names: Tuple[str, str],
        synthesized: List[str],
    ) -> Limb:
        """Chain root -> mid -> end, extending by fixed offsets where joints are missing."""
        root_pt = root.xy
        if mid is not None:
            mid_pt = mid.xy
        else:
            mid_pt = geom.offset(root_pt, outward * mid_dx, dy)
            synthesized.append(names[0])
        if end is not None:
            end_pt = end.xy
        else:
            end_pt = geom.offset(mid_pt, outward * end_dx, dy)
            synthesized.append(names[1])
        return Limb(as_point(root_pt), as_point(mid_pt), as_point(end_pt))


def build_body_mesh(
    frame: KeypointFrame,
    body_height_cm: float,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Optional[BodyMesh]:
    return BodyGeometryBuilder(config).build(frame, body_height_cm)
