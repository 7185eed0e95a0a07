"""Candidate stroke generation.

Strategies:
    - fresh: anchored at the sampled target pixel, colored from the
      reference there (plus jitter), random direction and length
    - perturb: every parameter of the last committed stroke jittered
    - connected: starts near one end of the last committed stroke, inherits
      its radius, color and alpha (jittered), new direction and length
    - hatch: copy of the last committed stroke shifted sideways along the
      normal of its p0→p2 chord, for parallel shading runs

Choice per candidate: with a last committed stroke present and probability
exploit_probability the candidate derives from it (perturb or connected,
split by perturb_probability); otherwise it is fresh. Hatch candidates are
produced on request by the optimizer, never by choose_strategy().

All geometry is clamped to the canvas, radii and alpha to their ranges and
color channels to [0, 255]. Randomness comes only from the injected
numpy Generator.
"""

import logging
import math
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..utils.color import ColorPaletteMode, nearest_palette_color
from ..utils.geometry import segment_normal
from ..utils.validators import OptimizerConfigV1
from .difference import TargetPixel
from .stroke import Color, Point, Stroke, StrokeBounds

logger = logging.getLogger(__name__)


# Jitter magnitudes for strokes derived from the last committed one
PERTURB_POSITION_JITTER = 10.0
CONNECTED_POSITION_JITTER = 5.0
RADIUS_JITTER = 2.0
DERIVED_COLOR_JITTER = 10.0
ALPHA_JITTER = 0.1

# Control point jitter as a fraction of the minimum radius
CONTROL_JITTER_FACTOR = 0.75


class StrokeStrategy(str, Enum):
    FRESH = "fresh"
    PERTURB = "perturb"
    CONNECTED = "connected"
    HATCH = "hatch"


def rand_between(rng: np.random.Generator, lo: float, hi: float) -> float:
    """Uniform sample in [lo, hi)."""
    return lo + rng.random() * (hi - lo)


def rand_exponential(rng: np.random.Generator, lo: float, hi: float) -> float:
    """Log-uniform sample lo * (hi/lo)^U; small values are as likely per octave as large ones."""
    return lo * math.pow(hi / lo, rng.random())


class CandidateGenerator:
    """Produces candidate strokes for one painting session.

    Parameters
    ----------
    config : OptimizerConfigV1
        Brush ranges, jitter, palette and strategy probabilities
    bounds : StrokeBounds
        Canvas and range limits
    reference : np.ndarray
        Reference pixels, shape (H, W, 4), uint8, canvas-sized
    rng : np.random.Generator
        Source of all randomness
    """

    def __init__(
        self,
        config: OptimizerConfigV1,
        bounds: StrokeBounds,
        reference: np.ndarray,
        rng: np.random.Generator,
    ):
        self.config = config
        self.bounds = bounds
        self.reference = reference
        self.rng = rng

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    def choose_strategy(self, last_stroke: Optional[Stroke]) -> StrokeStrategy:
        if last_stroke is not None and self.rng.random() < self.config.exploit_probability:
            if self.rng.random() < self.config.perturb_probability:
                return StrokeStrategy.PERTURB
            return StrokeStrategy.CONNECTED
        return StrokeStrategy.FRESH

    def generate(
        self,
        target: TargetPixel,
        last_stroke: Optional[Stroke],
    ) -> Tuple[StrokeStrategy, Stroke]:
        """Draw one candidate; returns (strategy used, stroke)."""
        strategy = self.choose_strategy(last_stroke)
        if strategy is StrokeStrategy.PERTURB:
            return strategy, self.perturb(last_stroke)
        if strategy is StrokeStrategy.CONNECTED:
            return strategy, self.connected(last_stroke)
        return strategy, self.fresh(target)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def fresh(self, target: TargetPixel) -> Stroke:
        p0, p1, p2 = self.build_stroke_points(float(target.x), float(target.y))
        lo, hi = self.config.alpha_range
        return Stroke(
            p0=p0,
            p1=p1,
            p2=p2,
            color=self.base_color(target),
            alpha=rand_between(self.rng, lo, hi),
        )

    def perturb(self, stroke: Stroke) -> Stroke:
        b = self.bounds

        def perturb_point(p: Point) -> Point:
            return Point(
                x=b.clamp_x(p.x + self._jitter(PERTURB_POSITION_JITTER)),
                y=b.clamp_y(p.y + self._jitter(PERTURB_POSITION_JITTER)),
                radius=b.clamp_radius(p.radius + self._jitter(RADIUS_JITTER)),
            )

        return Stroke(
            p0=perturb_point(stroke.p0),
            p1=perturb_point(stroke.p1),
            p2=perturb_point(stroke.p2),
            color=self._jitter_color(stroke.color, DERIVED_COLOR_JITTER),
            alpha=b.clamp_alpha(stroke.alpha + self._jitter(ALPHA_JITTER)),
        )

    def connected(self, stroke: Stroke) -> Stroke:
        b = self.bounds
        base = stroke.p0 if self.rng.random() < 0.5 else stroke.p2

        start_x = b.clamp_x(base.x + self._jitter(CONNECTED_POSITION_JITTER))
        start_y = b.clamp_y(base.y + self._jitter(CONNECTED_POSITION_JITTER))
        radius = b.clamp_radius(base.radius + self._jitter(RADIUS_JITTER))

        angle = self.rng.random() * 2.0 * math.pi
        length = rand_exponential(self.rng, *self.config.stroke_length_range)
        control_jitter = self.config.brush_radius_range[0] * CONTROL_JITTER_FACTOR

        p0 = Point(start_x, start_y, radius)
        p1 = Point(
            x=b.clamp_x(start_x + math.cos(angle) * length * radius + self._jitter(control_jitter)),
            y=b.clamp_y(start_y + math.sin(angle) * length * radius + self._jitter(control_jitter)),
            radius=b.clamp_radius(radius + self._jitter(RADIUS_JITTER)),
        )
        p2 = Point(
            x=b.clamp_x(start_x + math.cos(angle) * length * p1.radius + self._jitter(control_jitter)),
            y=b.clamp_y(start_y + math.sin(angle) * length * p1.radius + self._jitter(control_jitter)),
            radius=b.clamp_radius(radius + self._jitter(RADIUS_JITTER)),
        )

        return Stroke(
            p0=p0,
            p1=p1,
            p2=p2,
            color=self._jitter_color(stroke.color, DERIVED_COLOR_JITTER),
            alpha=b.clamp_alpha(stroke.alpha + self._jitter(ALPHA_JITTER)),
        )

    def hatch(self, stroke: Stroke, side: int) -> Stroke:
        """Parallel copy of stroke, offset to `side` (+1 or -1) of its chord.

        The offset is hatch_spacing plus the stroke's full average width, so
        neighbouring hatch lines leave a visible gap of hatch_spacing px.
        """
        normal = segment_normal((stroke.p0.x, stroke.p0.y), (stroke.p2.x, stroke.p2.y))
        if normal is None:
            normal = segment_normal((stroke.p0.x, stroke.p0.y), (stroke.p1.x, stroke.p1.y))
        if normal is None:
            normal = (0.0, 1.0)

        offset = side * (self.config.hatch_spacing + 2.0 * stroke.average_radius())
        dx, dy = normal[0] * offset, normal[1] * offset

        shifted = stroke.copy()
        for p in shifted.points:
            p.x += dx
            p.y += dy
        return shifted.clamp_(self.bounds)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def build_stroke_points(self, origin_x: float, origin_y: float) -> Tuple[Point, Point, Point]:
        """Anchor p0 at the origin and lay p1, p2 out along a random direction.

        p1 sits length * r0 away and p2 length * r1 away from the origin, so
        the stroke's extent scales with its width.
        """
        b = self.bounds
        r_lo, r_hi = self.config.brush_radius_range
        angle = self.rng.random() * 2.0 * math.pi
        jitter = r_lo * CONTROL_JITTER_FACTOR
        length = rand_exponential(self.rng, *self.config.stroke_length_range)
        cos_a, sin_a = math.cos(angle), math.sin(angle)

        p0 = Point(origin_x, origin_y, rand_exponential(self.rng, r_lo, r_hi))
        p1 = Point(
            x=b.clamp_x(origin_x + cos_a * length * p0.radius + self._jitter(jitter)),
            y=b.clamp_y(origin_y + sin_a * length * p0.radius + self._jitter(jitter)),
            radius=rand_exponential(self.rng, r_lo, r_hi),
        )
        p2 = Point(
            x=b.clamp_x(origin_x + cos_a * length * p1.radius + self._jitter(jitter)),
            y=b.clamp_y(origin_y + sin_a * length * p1.radius + self._jitter(jitter)),
            radius=rand_exponential(self.rng, r_lo, r_hi),
        )
        return p0, p1, p2

    def sample_reference_color(self, index: int) -> Tuple[float, float, float]:
        y, x = divmod(int(index), self.bounds.width)
        r, g, b = self.reference[y, x, :3]
        return float(r), float(g), float(b)

    def base_color(self, target: TargetPixel) -> Color:
        """Reference color at the target (palette-snapped if configured), jittered and rounded."""
        color = self.sample_reference_color(target.index)
        if self.config.palette_mode == ColorPaletteMode.SPECIFIED:
            color = nearest_palette_color(color, self.config.palette)
        return self.randomize_color(*color)

    def randomize_color(self, r: float, g: float, b: float) -> Color:
        j = self.config.color_jitter
        clamp = StrokeBounds.clamp_channel
        return Color(
            r=float(round(clamp(r + self._jitter(j)))),
            g=float(round(clamp(g + self._jitter(j)))),
            b=float(round(clamp(b + self._jitter(j)))),
        )

    def _jitter(self, magnitude: float) -> float:
        return rand_between(self.rng, -magnitude, magnitude)

    def _jitter_color(self, color: Color, magnitude: float) -> Color:
        clamp = StrokeBounds.clamp_channel
        return Color(
            r=clamp(color.r + self._jitter(magnitude)),
            g=clamp(color.g + self._jitter(magnitude)),
            b=clamp(color.b + self._jitter(magnitude)),
        )
