"""Geometry utilities for distances, interpolation and polygon areas on 2D points."""

import math
from typing import Iterable, Sequence, Tuple

Point = Tuple[float, float]


def as_point(p) -> Point:
    """Accept an ``(x, y)`` pair or anything with ``x``/``y`` attributes."""
    if hasattr(p, "x") and hasattr(p, "y"):
        return (float(p.x), float(p.y))
    return (float(p[0]), float(p[1]))


class GeometryCalculator:
    """Helper class for geometric calculations on keypoints and mesh points."""

    @staticmethod
    def distance_2d(point1, point2) -> float:
        """Calculate Euclidean distance between two 2D points.

        Args:
            point1: ``(x, y)`` pair or keypoint
            point2: ``(x, y)`` pair or keypoint

        Returns:
            Distance in pixels
        """
        if point1 is None or point2 is None:
            return 0.0

        x1, y1 = as_point(point1)
        x2, y2 = as_point(point2)
        return math.hypot(x2 - x1, y2 - y1)

    @staticmethod
    def midpoint(point1, point2) -> Point:
        """Calculate midpoint between two points."""
        x1, y1 = as_point(point1)
        x2, y2 = as_point(point2)
        return ((x1 + x2) / 2, (y1 + y2) / 2)

    @staticmethod
    def lerp(a: float, b: float, t: float) -> float:
        return a + (b - a) * t

    @staticmethod
    def lerp_point(point1, point2, t: float) -> Point:
        """Linear interpolation from point1 (t=0) to point2 (t=1)."""
        x1, y1 = as_point(point1)
        x2, y2 = as_point(point2)
        return (x1 + (x2 - x1) * t, y1 + (y2 - y1) * t)

    @staticmethod
    def offset(point, dx: float, dy: float) -> Point:
        x, y = as_point(point)
        return (x + dx, y + dy)

    @staticmethod
    def outward_sign(x: float, center_x: float, default: float = -1.0) -> float:
        """Direction (+1/-1) pointing from center_x towards x."""
        if x > center_x:
            return 1.0
        if x < center_x:
            return -1.0
        return default

    @staticmethod
    def angle_of(point1, point2) -> float:
        """Angle in radians of the vector point1 -> point2 (image coordinates)."""
        x1, y1 = as_point(point1)
        x2, y2 = as_point(point2)
        return math.atan2(y2 - y1, x2 - x1)

    @staticmethod
    def polygon_area(points: Sequence) -> float:
        """Signed shoelace area.

        Positive for polygons listed clockwise on screen (y pointing down),
        i.e. top-left, top-right, bottom-right, bottom-left.
        """
        pts = [as_point(p) for p in points]
        n = len(pts)
        if n < 3:
            return 0.0
        acc = 0.0
        for i in range(n):
            x1, y1 = pts[i]
            x2, y2 = pts[(i + 1) % n]
            acc += x1 * y2 - x2 * y1
        return acc / 2.0

    @staticmethod
    def centroid(points: Iterable) -> Point:
        pts = [as_point(p) for p in points]
        if not pts:
            return (0.0, 0.0)
        return (
            sum(p[0] for p in pts) / len(pts),
            sum(p[1] for p in pts) / len(pts),
        )
