"""Garment control grids generated from a body mesh.

Each grid is a rows x cols lattice of destination points with matching UV
coordinates, laid out row-major. Adjacent 2x2 blocks form the quads the
renderer warps. Columns always run from image-left to image-right so every
quad keeps the same winding whether or not the camera view is mirrored.

Grids are rebuilt every frame; nothing here is cached.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple

import numpy as np

from bodyfit.body_mesh import BodyMesh, LandmarkTriple, Limb
from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit_utils.geometry import GeometryCalculator, Point

logger = logging.getLogger(__name__)

geom = GeometryCalculator


class GarmentCategory(str, Enum):
    UPPER_BODY = "upper_body"
    DRESS = "dress"
    LOWER_BODY = "lower_body"


# (rows, cols) per category; lower body is per leg
GRID_SIZES: Dict[GarmentCategory, Tuple[int, int]] = {
    GarmentCategory.UPPER_BODY: (5, 3),
    GarmentCategory.DRESS: (6, 4),
    GarmentCategory.LOWER_BODY: (5, 3),
}

# Vertical band boundaries for the upper-body grid
CHEST_BAND_END = 0.33
WAIST_BAND_END = 0.66

LEG_KNEE_TAPER = 0.85
LEG_ANKLE_TAPER = 0.2

SLEEVE_WIDTH_RATIO = 0.35
FOREARM_WIDTH_RATIO = 0.28


@dataclass(frozen=True)
class GarmentMeshGrid:
    """Row-major control grid with parallel UV coordinates in [0, 1]^2."""

    rows: int
    cols: int
    points: np.ndarray
    uv_coords: np.ndarray
    name: str = "garment"

    def __post_init__(self):
        expected = (self.rows * self.cols, 2)
        if self.points.shape != expected or self.uv_coords.shape != expected:
            raise ValueError(
                f"Grid {self.name} expects {expected} points/uvs, "
                f"got {self.points.shape} and {self.uv_coords.shape}"
            )

    def __len__(self) -> int:
        return self.rows * self.cols

    def index(self, row: int, col: int) -> int:
        return row * self.cols + col

    def quads(self) -> Iterator[Tuple[int, int, int, int]]:
        """Point indices (top-left, top-right, bottom-right, bottom-left) per cell."""
        for r in range(self.rows - 1):
            for c in range(self.cols - 1):
                tl = self.index(r, c)
                tr = self.index(r, c + 1)
                bl = self.index(r + 1, c)
                br = self.index(r + 1, c + 1)
                yield tl, tr, br, bl

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "rows": self.rows,
            "cols": self.cols,
            "points": self.points.round(2).tolist(),
            "uvCoords": self.uv_coords.round(4).tolist(),
        }


@dataclass(frozen=True)
class LimbSegment:
    """Sleeve or leg segment used by the cylindrical shading pass."""

    start: Point
    end: Point
    width: float


def _bulge(s: float, amplitude: float) -> float:
    return math.sin(s * math.pi) * amplitude


def _image_ordered(triple: LandmarkTriple, flip: bool) -> Tuple[Point, Point]:
    return (triple.right, triple.left) if flip else (triple.left, triple.right)


def _grid(rows: int, cols: int, points: List[Point], uvs: List[Point], name: str) -> GarmentMeshGrid:
    return GarmentMeshGrid(
        rows=rows,
        cols=cols,
        points=np.asarray(points, dtype=np.float64).reshape(rows * cols, 2),
        uv_coords=np.asarray(uvs, dtype=np.float64).reshape(rows * cols, 2),
        name=name,
    )


def upper_body_grid(mesh: BodyMesh, config: PipelineConfig = DEFAULT_CONFIG) -> Tuple[GarmentMeshGrid, ...]:
    """Torso grid following shoulder -> chest -> waist -> hip bands."""
    if mesh.waist is None or mesh.hips is None:
        logger.debug("Upper-body grid skipped: hips not detected")
        return ()

    rows, cols = GRID_SIZES[GarmentCategory.UPPER_BODY]
    flip = mesh.shoulders.left[0] > mesh.shoulders.right[0]
    bands = [
        (mesh.shoulders, mesh.chest),
        (mesh.chest, mesh.waist),
        (mesh.waist, mesh.hips),
    ]

    points: List[Point] = []
    uvs: List[Point] = []
    for r in range(rows):
        t = r / (rows - 1)
        if t < CHEST_BAND_END:
            top, bottom = bands[0]
            local_t = t / CHEST_BAND_END
        elif t < WAIST_BAND_END:
            top, bottom = bands[1]
            local_t = (t - CHEST_BAND_END) / (WAIST_BAND_END - CHEST_BAND_END)
        else:
            top, bottom = bands[2]
            local_t = (t - WAIST_BAND_END) / (1.0 - WAIST_BAND_END)

        top_l, top_r = _image_ordered(top, flip)
        bot_l, bot_r = _image_ordered(bottom, flip)
        left_edge = geom.lerp_point(top_l, bot_l, local_t)
        right_edge = geom.lerp_point(top_r, bot_r, local_t)

        for c in range(cols):
            s = c / (cols - 1)
            x, y = geom.lerp_point(left_edge, right_edge, s)
            points.append((x, y + _bulge(s, config.upper_bulge_px)))
            uvs.append((s, t))

    return (_grid(rows, cols, points, uvs, "torso"),)


def _hem_y(mesh: BodyMesh, config: PipelineConfig) -> float:
    """Knee line when a real knee was detected, else a fixed drop below the shoulders."""
    if mesh.legs is not None:
        knees = [
            limb.mid[1] for side, limb in mesh.legs.items()
            if not mesh.is_synthesized(f"{side}_knee")
        ]
        if knees:
            return sum(knees) / len(knees)
    return mesh.shoulders.center[1] + config.dress_fallback_hem_ratio * mesh.shoulder_width_px


def dress_grid(mesh: BodyMesh, config: PipelineConfig = DEFAULT_CONFIG) -> Tuple[GarmentMeshGrid, ...]:
    """Flared grid from the shoulder line down to the hem."""
    rows, cols = GRID_SIZES[GarmentCategory.DRESS]
    shoulder_width = mesh.shoulder_width_px
    top_width = config.dress_top_width_ratio * shoulder_width
    bottom_width = config.dress_bottom_width_ratio * shoulder_width

    top_x, top_y = mesh.shoulders.center
    bottom_x = mesh.hips.center[0] if mesh.hips is not None else top_x
    hem_y = _hem_y(mesh, config)

    points: List[Point] = []
    uvs: List[Point] = []
    for r in range(rows):
        t = r / (rows - 1)
        cx = geom.lerp(top_x, bottom_x, t)
        y = geom.lerp(top_y, hem_y, t)
        width = geom.lerp(top_width, bottom_width, t)
        for c in range(cols):
            s = c / (cols - 1)
            x = cx - width / 2 + s * width
            points.append((x, y + _bulge(s, config.dress_bulge_px) * t))
            uvs.append((s, t))

    return (_grid(rows, cols, points, uvs, "dress"),)


def _leg_grid(leg: Limb, base_width: float, u_offset: float, name: str,
              config: PipelineConfig) -> GarmentMeshGrid:
    rows, cols = GRID_SIZES[GarmentCategory.LOWER_BODY]
    points: List[Point] = []
    uvs: List[Point] = []
    for r in range(rows):
        t = r / (rows - 1)
        if t < 0.5:
            local_t = t / 0.5
            cx, cy = geom.lerp_point(leg.root, leg.mid, local_t)
            width = geom.lerp(base_width, base_width * LEG_KNEE_TAPER, local_t)
        else:
            local_t = (t - 0.5) / 0.5
            cx, cy = geom.lerp_point(leg.mid, leg.end, local_t)
            width = base_width * LEG_KNEE_TAPER * (1 - LEG_ANKLE_TAPER * local_t)
        for c in range(cols):
            s = c / (cols - 1)
            x = cx - width / 2 + s * width
            points.append((x + _bulge(s, config.leg_bulge_px), cy))
            uvs.append((u_offset + s * 0.5, t))
    return _grid(rows, cols, points, uvs, name)


def _legs_image_ordered(mesh: BodyMesh) -> List[Tuple[str, Limb]]:
    return sorted(mesh.legs.items(), key=lambda item: item[1].root[0])


def lower_body_grids(mesh: BodyMesh, config: PipelineConfig = DEFAULT_CONFIG) -> Tuple[GarmentMeshGrid, ...]:
    """One grid per leg; the image-left leg samples u in [0, 0.5]."""
    if mesh.legs is None or mesh.hips is None:
        logger.debug("Lower-body grids skipped: hips not detected")
        return ()

    base_width = 0.5 * geom.distance_2d(mesh.hips.left, mesh.hips.right)
    grids = []
    for i, (side, leg) in enumerate(_legs_image_ordered(mesh)):
        grids.append(_leg_grid(leg, base_width, 0.5 * i, f"{side}_leg", config))
    return tuple(grids)


_GENERATORS = {
    GarmentCategory.UPPER_BODY: upper_body_grid,
    GarmentCategory.DRESS: dress_grid,
    GarmentCategory.LOWER_BODY: lower_body_grids,
}


def generate_garment_mesh(
    mesh: BodyMesh,
    category,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> Tuple[GarmentMeshGrid, ...]:
    """Generate the control grid(s) for a garment category.

    Args:
        mesh: body mesh for the current frame
        category: GarmentCategory or its string value

    Returns:
        One grid (upper body, dress), two grids (lower body), or an empty
        tuple when the landmarks the category needs are missing
    """
    return _GENERATORS[GarmentCategory(category)](mesh, config)


def limb_segments(mesh: BodyMesh, category) -> List[LimbSegment]:
    """Sleeve segments for tops and dresses, leg segments for legwear."""
    category = GarmentCategory(category)
    segments: List[LimbSegment] = []

    if category is GarmentCategory.LOWER_BODY:
        if mesh.legs is None or mesh.hips is None:
            return segments
        base_width = 0.5 * geom.distance_2d(mesh.hips.left, mesh.hips.right)
        for _, leg in _legs_image_ordered(mesh):
            segments.append(LimbSegment(leg.root, leg.mid, base_width))
            segments.append(LimbSegment(leg.mid, leg.end, base_width * LEG_KNEE_TAPER))
        return segments

    shoulder_width = mesh.shoulder_width_px
    for arm in mesh.arms.values():
        segments.append(LimbSegment(arm.root, arm.mid, SLEEVE_WIDTH_RATIO * shoulder_width))
        segments.append(LimbSegment(arm.mid, arm.end, FOREARM_WIDTH_RATIO * shoulder_width))
    return segments
