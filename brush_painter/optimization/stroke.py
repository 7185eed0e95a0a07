"""Stroke model: three radius-carrying anchors, a color and an opacity.

Provides:
    - Point, Color, Stroke value types (mutable; refinement updates in place)
    - StrokeBounds: canvas, radius and alpha limits with clamping
    - Stroke.draw(): ribbon rasterisation on a RasterSurface
    - Parameter access by name for finite-difference probing
    - Dict conversion matching the strokes.v1 log schema

Rendering (Stroke.draw):
    - Sample the quadratic Bézier (p0, p1, p2) at n_divisions + 1 points,
      blending radius with the same weights as position
    - Fill a circle at the first sample (start cap)
    - For every segment with non-zero length: fill the quad spanned by the
      two samples offset ±radius along the segment normal, then fill a circle
      at the segment end (joint)
    - Every fill composites separately at the stroke's alpha, so overlapping
      shapes inside one stroke accumulate opacity

Parameter vector (13 entries, PARAMETER_NAMES order):
    p0.x p0.y p0.radius p1.x p1.y p1.radius p2.x p2.y p2.radius
    color.r color.g color.b alpha
"""

import copy
import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

import numpy as np

from ..raster.surface import RasterSurface
from ..utils.geometry import sample_quadratic, segment_normal


PARAMETER_NAMES: Tuple[str, ...] = (
    'p0.x', 'p0.y', 'p0.radius',
    'p1.x', 'p1.y', 'p1.radius',
    'p2.x', 'p2.y', 'p2.radius',
    'color.r', 'color.g', 'color.b',
    'alpha',
)

POSITION_PARAMETERS = frozenset(n for n in PARAMETER_NAMES if n.endswith(('.x', '.y')))
RADIUS_PARAMETERS = frozenset(n for n in PARAMETER_NAMES if n.endswith('.radius'))
COLOR_PARAMETERS = frozenset(n for n in PARAMETER_NAMES if n.startswith('color.'))


@dataclass
class Point:
    """Anchor point in canvas pixels with local half-width."""
    x: float
    y: float
    radius: float

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.radius)

    def replace(self, **changes) -> 'Point':
        return dataclasses.replace(self, **changes)


@dataclass
class Color:
    """RGB color, [0, 255] per channel."""
    r: float
    g: float
    b: float

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.r, self.g, self.b)


@dataclass
class StrokeBounds:
    """Limits every candidate and refined stroke is clamped into.

    Attributes
    ----------
    width, height : int
        Canvas size; positions are clamped to [0, width] × [0, height]
    radius_range : tuple of float
        Per-point radius [min, max]
    alpha_range : tuple of float
        Opacity [min, max]
    """
    width: int
    height: int
    radius_range: Tuple[float, float]
    alpha_range: Tuple[float, float]

    def clamp_x(self, x: float) -> float:
        return min(max(x, 0.0), float(self.width))

    def clamp_y(self, y: float) -> float:
        return min(max(y, 0.0), float(self.height))

    def clamp_radius(self, r: float) -> float:
        return min(max(r, self.radius_range[0]), self.radius_range[1])

    def clamp_alpha(self, a: float) -> float:
        return min(max(a, self.alpha_range[0]), self.alpha_range[1])

    @staticmethod
    def clamp_channel(c: float) -> float:
        return min(max(c, 0.0), 255.0)


@dataclass
class Stroke:
    """Quadratic Bézier brush stroke with per-point radius."""
    p0: Point
    p1: Point
    p2: Point
    color: Color
    alpha: float

    @property
    def points(self) -> Tuple[Point, Point, Point]:
        return (self.p0, self.p1, self.p2)

    def copy(self) -> 'Stroke':
        """Deep copy; later mutation of either stroke leaves the other intact."""
        return copy.deepcopy(self)

    def replace(self, **changes) -> 'Stroke':
        """Deep copy with whole fields swapped, e.g. stroke.replace(p1=stroke.p1.replace(x=3.0))."""
        return dataclasses.replace(self.copy(), **changes)

    def average_radius(self) -> float:
        return (self.p0.radius + self.p1.radius + self.p2.radius) / 3.0

    def max_radius(self) -> float:
        return max(self.p0.radius, self.p1.radius, self.p2.radius)

    # ------------------------------------------------------------------
    # Named parameter access
    # ------------------------------------------------------------------

    def get_parameter(self, name: str) -> float:
        if name == 'alpha':
            return self.alpha
        owner, attr = name.split('.')
        return getattr(getattr(self, owner), attr)

    def set_parameter(self, name: str, value: float) -> None:
        if name == 'alpha':
            self.alpha = float(value)
            return
        owner, attr = name.split('.')
        setattr(getattr(self, owner), attr, float(value))

    def with_parameter(self, name: str, value: float) -> 'Stroke':
        """Copy with one parameter overridden."""
        probe = self.copy()
        probe.set_parameter(name, value)
        return probe

    def to_vector(self) -> np.ndarray:
        return np.array([self.get_parameter(n) for n in PARAMETER_NAMES], dtype=np.float64)

    # ------------------------------------------------------------------
    # Clamping
    # ------------------------------------------------------------------

    def clamp_(self, bounds: StrokeBounds) -> 'Stroke':
        """Clamp every parameter into bounds in place; returns self."""
        for p in self.points:
            p.x = bounds.clamp_x(p.x)
            p.y = bounds.clamp_y(p.y)
            p.radius = bounds.clamp_radius(p.radius)
        self.color.r = bounds.clamp_channel(self.color.r)
        self.color.g = bounds.clamp_channel(self.color.g)
        self.color.b = bounds.clamp_channel(self.color.b)
        self.alpha = bounds.clamp_alpha(self.alpha)
        return self

    def clamped(self, bounds: StrokeBounds) -> 'Stroke':
        return self.copy().clamp_(bounds)

    def is_within(self, bounds: StrokeBounds) -> bool:
        """True if every parameter already lies inside bounds."""
        return self.to_vector().tolist() == self.clamped(bounds).to_vector().tolist()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def sample_centerline(self, n_divisions: int = 20) -> np.ndarray:
        """(n_divisions + 1, 3) array of (x, y, radius) along the curve."""
        return sample_quadratic(
            self.p0.as_tuple(), self.p1.as_tuple(), self.p2.as_tuple(), n_divisions
        )

    def draw(self, surface: RasterSurface, n_divisions: int = 20) -> None:
        """Rasterise this stroke onto surface (see module docstring)."""
        samples = self.sample_centerline(n_divisions)

        surface.save()
        surface.fill_style = self.color.as_tuple()
        surface.global_alpha = self.alpha
        try:
            _fill_circle(surface, samples[0])
            for prev, curr in zip(samples[:-1], samples[1:]):
                normal = segment_normal(prev, curr)
                if normal is None:
                    continue
                nx, ny = normal
                surface.begin_path()
                surface.move_to(prev[0] + nx * prev[2], prev[1] + ny * prev[2])
                surface.line_to(curr[0] + nx * curr[2], curr[1] + ny * curr[2])
                surface.line_to(curr[0] - nx * curr[2], curr[1] - ny * curr[2])
                surface.line_to(prev[0] - nx * prev[2], prev[1] - ny * prev[2])
                surface.close_path()
                surface.fill()
                _fill_circle(surface, curr)
        finally:
            surface.restore()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict in the strokes.v1 entry layout (without index)."""
        return {
            'p0': dataclasses.asdict(self.p0),
            'p1': dataclasses.asdict(self.p1),
            'p2': dataclasses.asdict(self.p2),
            'color': dataclasses.asdict(self.color),
            'alpha': float(self.alpha),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Stroke':
        return cls(
            p0=Point(**{k: float(v) for k, v in d['p0'].items()}),
            p1=Point(**{k: float(v) for k, v in d['p1'].items()}),
            p2=Point(**{k: float(v) for k, v in d['p2'].items()}),
            color=Color(**{k: float(v) for k, v in d['color'].items()}),
            alpha=float(d['alpha']),
        )


def _fill_circle(surface: RasterSurface, sample: Iterable[float]) -> None:
    x, y, r = (float(v) for v in sample)
    surface.begin_path()
    surface.arc(x, y, r, 0.0, 2.0 * math.pi)
    surface.fill()
