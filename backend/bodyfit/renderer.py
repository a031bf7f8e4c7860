"""Piecewise quad warping of a garment texture onto garment control grids.

Every 2x2 block of grid points is treated as a quad. The matching UV block
selects a source rectangle of the texture, which is placed on the quad by an
affine approximation: translate to the quad centroid, rotate by the angle of
the quad's top edge, scale to the quad's mean width/height. Grid cells are
small relative to body curvature, so the approximation holds up in practice.

Two shading passes follow, both limited to pixels the garment covers:

- cylindrical shading on sleeve/leg segments (lighter near the segment
  start, darker near its end)
- ambient side shading, a multiply blend that darkens towards the garment's
  left/right edges; for a side-on body the gradient runs one way only, from
  the lit image-left edge to the image-right edge

A quad that cannot be drawn (zero or negative area, empty source region,
OpenCV failure) is skipped and counted; rendering continues with the next one.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

import cv2
import numpy as np

from bodyfit.body_mesh import Orientation
from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit.garment_mesh import GarmentMeshGrid, LimbSegment, generate_garment_mesh, limb_segments
from bodyfit_utils.geometry import GeometryCalculator

logger = logging.getLogger(__name__)

geom = GeometryCalculator

MIN_QUAD_AREA = 1e-3
MIN_EXTENT_PX = 0.5
# Destination overdraw that hides seams between neighbouring quads
SEAM_PAD_PX = 1.0


@dataclass(frozen=True)
class RenderResult:
    drawn: int = 0
    dropped: int = 0

    @property
    def complete(self) -> bool:
        return self.dropped == 0

    def to_dict(self) -> Dict:
        return {"drawn": self.drawn, "dropped": self.dropped, "complete": self.complete}


def ensure_bgra(texture: np.ndarray) -> np.ndarray:
    """Return a 4-channel uint8 texture, adding an opaque alpha if needed."""
    if texture.ndim == 3 and texture.shape[2] == 4:
        return texture
    if texture.ndim == 3 and texture.shape[2] == 3:
        alpha = np.full(texture.shape[:2] + (1,), 255, dtype=np.uint8)
        return np.concatenate([texture, alpha], axis=2)
    raise ValueError(f"Unsupported texture shape {texture.shape}")


class MeshWarpRenderer:
    """Draws garment grids onto a BGR surface in place."""

    def __init__(self, config: PipelineConfig = DEFAULT_CONFIG):
        self.config = config

    def render(
        self,
        surface: np.ndarray,
        grids: Sequence[GarmentMeshGrid],
        texture: np.ndarray,
        segments: Iterable[LimbSegment] = (),
        orientation: Optional[Orientation] = None,
    ) -> RenderResult:
        """Warp ``texture`` onto ``surface`` through every quad of every grid.

        Args:
            surface: BGR uint8 image, modified in place
            grids: control grids for the current frame
            texture: BGR or BGRA uint8 garment image
            segments: limb segments for the cylindrical shading pass
            orientation: body orientation; Side switches the side shading to a
                one-sided gradient

        Returns:
            RenderResult with the number of drawn and dropped quads
        """
        texture = ensure_bgra(texture)
        coverage = np.zeros(surface.shape[:2], dtype=np.float32)
        drawn = dropped = 0

        for grid in grids:
            for quad in grid.quads():
                idx = list(quad)
                try:
                    ok = self._draw_quad(surface, coverage, texture, grid.points[idx], grid.uv_coords[idx])
                except (cv2.error, ValueError, ZeroDivisionError) as e:
                    logger.debug(f"Quad {quad} of {grid.name} failed: {e}")
                    ok = False
                if ok:
                    drawn += 1
                else:
                    dropped += 1

        if dropped:
            logger.debug(f"Dropped {dropped} degenerate quad(s)")

        if coverage.any():
            self._shade_limbs(surface, coverage, segments)
            self._shade_sides(surface, coverage, grids, orientation)

        return RenderResult(drawn=drawn, dropped=dropped)

    def _draw_quad(
        self,
        surface: np.ndarray,
        coverage: np.ndarray,
        texture: np.ndarray,
        pts: np.ndarray,
        uvs: np.ndarray,
    ) -> bool:
        """Place one texture rectangle on one quad (tl, tr, br, bl)."""
        if geom.polygon_area(pts) <= MIN_QUAD_AREA:
            return False

        tl, tr, br, bl = pts
        dst_w = (geom.distance_2d(tl, tr) + geom.distance_2d(bl, br)) / 2
        dst_h = (geom.distance_2d(tl, bl) + geom.distance_2d(tr, br)) / 2
        if dst_w < MIN_EXTENT_PX or dst_h < MIN_EXTENT_PX:
            return False

        th, tw = texture.shape[:2]
        sx0, sx1 = float(uvs[:, 0].min()) * tw, float(uvs[:, 0].max()) * tw
        sy0, sy1 = float(uvs[:, 1].min()) * th, float(uvs[:, 1].max()) * th
        src_w, src_h = sx1 - sx0, sy1 - sy0
        if src_w <= 0 or src_h <= 0:
            return False

        ix0, iy0 = max(0, int(math.floor(sx0))), max(0, int(math.floor(sy0)))
        ix1, iy1 = min(tw, int(math.ceil(sx1))), min(th, int(math.ceil(sy1)))
        if ix1 <= ix0 or iy1 <= iy0:
            return False
        crop = texture[iy0:iy1, ix0:ix1]

        # Source rectangle centre in crop coordinates
        scx = sx0 - ix0 + src_w / 2
        scy = sy0 - iy0 + src_h / 2
        kx = (dst_w + SEAM_PAD_PX) / src_w
        ky = (dst_h + SEAM_PAD_PX) / src_h
        angle = geom.angle_of(tl, tr)
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        cx, cy = geom.centroid(pts)

        M = np.array([
            [cos_a * kx, -sin_a * ky, cx - (cos_a * kx * scx - sin_a * ky * scy)],
            [sin_a * kx, cos_a * ky, cy - (sin_a * kx * scx + cos_a * ky * scy)],
        ], dtype=np.float64)

        ch, cw = crop.shape[:2]
        corners = np.array([[0, 0, 1], [cw, 0, 1], [cw, ch, 1], [0, ch, 1]], dtype=np.float64)
        mapped = corners @ M.T
        H, W = surface.shape[:2]
        x0 = max(0, int(math.floor(mapped[:, 0].min())))
        y0 = max(0, int(math.floor(mapped[:, 1].min())))
        x1 = min(W, int(math.ceil(mapped[:, 0].max())))
        y1 = min(H, int(math.ceil(mapped[:, 1].max())))
        if x1 <= x0 or y1 <= y0:
            # Entirely off-surface: nothing to draw, nothing wrong
            return True

        M_local = M.copy()
        M_local[0, 2] -= x0
        M_local[1, 2] -= y0
        warped = cv2.warpAffine(
            crop, M_local, (x1 - x0, y1 - y0),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0, 0),
        )

        alpha = warped[:, :, 3].astype(np.float32) / 255.0
        alpha3 = alpha[..., None]
        roi = surface[y0:y1, x0:x1].astype(np.float32)
        blended = alpha3 * warped[:, :, :3].astype(np.float32) + (1 - alpha3) * roi
        surface[y0:y1, x0:x1] = np.clip(blended, 0, 255).astype(np.uint8)
        np.maximum(coverage[y0:y1, x0:x1], alpha, out=coverage[y0:y1, x0:x1])
        return True

    def _shade_limbs(self, surface: np.ndarray, coverage: np.ndarray, segments: Iterable[LimbSegment]) -> None:
        """Lighten the first and darken the last band of each limb segment."""
        band = self.config.cylinder_band
        strength = self.config.cylinder_strength
        H, W = surface.shape[:2]

        for seg in segments:
            ax, ay = seg.start
            bx, by = seg.end
            dx, dy = bx - ax, by - ay
            length_sq = dx * dx + dy * dy
            if length_sq < 1.0 or seg.width <= 0:
                continue

            half = seg.width / 2
            x0 = max(0, int(math.floor(min(ax, bx) - half)))
            y0 = max(0, int(math.floor(min(ay, by) - half)))
            x1 = min(W, int(math.ceil(max(ax, bx) + half)) + 1)
            y1 = min(H, int(math.ceil(max(ay, by) + half)) + 1)
            if x1 <= x0 or y1 <= y0:
                continue

            ys, xs = np.mgrid[y0:y1, x0:x1].astype(np.float32)
            rx, ry = xs - ax, ys - ay
            along = (rx * dx + ry * dy) / length_sq
            perp = np.abs(rx * dy - ry * dx) / math.sqrt(length_sq)
            inside = (along >= 0) & (along <= 1) & (perp <= half)

            weight = coverage[y0:y1, x0:x1] * strength
            light = inside & (along < band)
            dark = inside & (along > 1 - band)
            if not (light.any() or dark.any()):
                continue

            roi = surface[y0:y1, x0:x1].astype(np.float32)
            roi[light] += (255.0 - roi[light]) * weight[light][:, None]
            roi[dark] *= (1.0 - weight[dark])[:, None]
            surface[y0:y1, x0:x1] = np.clip(roi, 0, 255).astype(np.uint8)

    def _shade_sides(
        self,
        surface: np.ndarray,
        coverage: np.ndarray,
        grids: Sequence[GarmentMeshGrid],
        orientation: Optional[Orientation] = None,
    ) -> None:
        """Multiply-blend a horizontal gradient that darkens towards each grid's edges."""
        opacity = self.config.side_shade_opacity
        darkness = self.config.side_shade_darkness
        H, W = surface.shape[:2]

        for grid in grids:
            gx0, gy0 = grid.points.min(axis=0)
            gx1, gy1 = grid.points.max(axis=0)
            half = (gx1 - gx0) / 2
            if half < 1:
                continue
            center = gx0 + half

            x0, x1 = max(0, int(math.floor(gx0))), min(W, int(math.ceil(gx1)) + 1)
            y0, y1 = max(0, int(math.floor(gy0))), min(H, int(math.ceil(gy1)) + 1)
            if x1 <= x0 or y1 <= y0:
                continue

            xs = np.arange(x0, x1, dtype=np.float32)
            if orientation is Orientation.SIDE:
                edge = np.clip((xs - gx0) / (2 * half), 0, 1)
            else:
                edge = np.clip(np.abs(xs - center) / half, 0, 1)
            layer = 1.0 - darkness * edge
            factor = 1.0 - opacity * coverage[y0:y1, x0:x1] * (1.0 - layer[None, :])

            roi = surface[y0:y1, x0:x1].astype(np.float32) * factor[..., None]
            surface[y0:y1, x0:x1] = np.clip(roi, 0, 255).astype(np.uint8)


def render_garment(
    surface: np.ndarray,
    mesh,
    texture: np.ndarray,
    category,
    config: PipelineConfig = DEFAULT_CONFIG,
) -> RenderResult:
    """Generate grids for ``category`` from a body mesh and draw the garment."""
    grids = generate_garment_mesh(mesh, category, config)
    if not grids:
        return RenderResult()
    segments = limb_segments(mesh, category)
    return MeshWarpRenderer(config).render(surface, grids, texture, segments, mesh.orientation)
