"""Geometric operations for brush strokes.

Provides:
    - Quadratic Bézier evaluation with an interpolated per-point radius
    - Segment normals for ribbon rasterisation
    - Bounding boxes of radius-carrying point sets, clipped to a canvas
    - Polyline length

Used by:
    - Stroke.draw(): centerline sampling + ribbon quads
    - CostEvaluator: tight refinement bounding boxes
    - CandidateGenerator: hatch offsets (chord normal)

All coordinates are canvas pixels (top-left origin, +Y down). Radius is
blended along the curve with the same Bernstein weights as position.
"""

from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np


class BBox(NamedTuple):
    """Integer pixel rectangle (x, y, w, h)."""
    x: int
    y: int
    w: int
    h: int

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0

    @property
    def area(self) -> int:
        return max(0, self.w) * max(0, self.h)


def quadratic_bezier_eval(
    p0: Sequence[float],
    p1: Sequence[float],
    p2: Sequence[float],
    t: np.ndarray,
) -> np.ndarray:
    """Evaluate a quadratic Bézier curve at parameter values t.

    Parameters
    ----------
    p0, p1, p2 : sequence of float
        Control points of equal length D, e.g. (x, y) or (x, y, radius)
    t : np.ndarray
        Parameter values in [0, 1], shape (N,)

    Returns
    -------
    np.ndarray
        Points on curve, shape (N, D)

    Notes
    -----
    B(t) = (1-t)²·p0 + 2(1-t)t·p1 + t²·p2
    Any extra coordinate (radius) is blended exactly like x and y.
    """
    t = np.atleast_1d(np.asarray(t, dtype=np.float64))[:, np.newaxis]
    mt = 1.0 - t
    a = np.asarray(p0, dtype=np.float64)[np.newaxis]
    b = np.asarray(p1, dtype=np.float64)[np.newaxis]
    c = np.asarray(p2, dtype=np.float64)[np.newaxis]
    return mt * mt * a + 2.0 * mt * t * b + t * t * c


def sample_quadratic(
    p0: Sequence[float],
    p1: Sequence[float],
    p2: Sequence[float],
    n_divisions: int = 20,
) -> np.ndarray:
    """Sample n_divisions + 1 evenly spaced (in t) points, endpoints included."""
    if n_divisions < 1:
        raise ValueError(f"n_divisions must be >= 1, got {n_divisions}")
    t = np.arange(n_divisions + 1, dtype=np.float64) / n_divisions
    return quadratic_bezier_eval(p0, p1, p2, t)


def segment_normal(
    a: Sequence[float],
    b: Sequence[float],
) -> Optional[Tuple[float, float]]:
    """Unit normal (-dy, dx)/len of segment a→b, or None for a zero-length segment."""
    dx = float(b[0]) - float(a[0])
    dy = float(b[1]) - float(a[1])
    length = float(np.hypot(dx, dy))
    if length <= 0.0:
        return None
    return -dy / length, dx / length


def clip_bbox(
    min_x: float,
    min_y: float,
    max_x: float,
    max_y: float,
    width: int,
    height: int,
) -> BBox:
    """Convert a float extent to an integer rectangle inside [0,width]×[0,height].

    The origin is floored and the size ceiled, so the rectangle always
    covers the float extent that lies on the canvas. A fully off-canvas
    extent yields an empty box.
    """
    x = int(np.floor(min(max(min_x, 0.0), width)))
    y = int(np.floor(min(max(min_y, 0.0), height)))
    w = int(np.ceil(min(max(max_x - x, 0.0), width - x)))
    h = int(np.ceil(min(max(max_y - y, 0.0), height - y)))
    return BBox(x, y, w, h)


def radius_points_bbox(
    points: Sequence[Tuple[float, float, float]],
    width: int,
    height: int,
    margin: float = 0.0,
) -> BBox:
    """Bounding box of (x, y, radius) points expanded by max radius + margin.

    The control polygon encloses a quadratic Bézier (convex hull property),
    so the box covers the whole ribbon when margin >= 0.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    pad = float(pts[:, 2].max()) + margin
    return clip_bbox(
        float(pts[:, 0].min()) - pad,
        float(pts[:, 1].min()) - pad,
        float(pts[:, 0].max()) + pad,
        float(pts[:, 1].max()) + pad,
        width,
        height,
    )
