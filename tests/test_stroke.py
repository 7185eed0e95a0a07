"""Test the stroke model.

Tests for brush_painter.optimization.stroke:
    - Parameter access by name (13 parameters, fixed order)
    - copy() independence, with_parameter() leaves the original untouched
    - Clamping into StrokeBounds
    - Centerline sampling and average radius
    - draw(): paints along the curve only, at the stroke's color
    - Dict round-trip through the strokes.v1 schema

Run:
    pytest tests/test_stroke.py -v
"""

import numpy as np
import pytest

from brush_painter.optimization.stroke import (
    PARAMETER_NAMES,
    Color,
    Point,
    Stroke,
    StrokeBounds,
)
from brush_painter.raster import RasterSurface
from brush_painter.utils.validators import StrokeV1


@pytest.fixture
def stroke():
    return Stroke(
        p0=Point(10.0, 20.0, 3.0),
        p1=Point(30.0, 20.0, 4.0),
        p2=Point(50.0, 20.0, 5.0),
        color=Color(200.0, 100.0, 50.0),
        alpha=1.0,
    )


@pytest.fixture
def bounds():
    return StrokeBounds(width=64, height=40, radius_range=(1.0, 10.0), alpha_range=(0.5, 1.0))


def test_parameter_vector_order(stroke):
    assert len(PARAMETER_NAMES) == 13
    np.testing.assert_array_equal(
        stroke.to_vector(),
        [10, 20, 3, 30, 20, 4, 50, 20, 5, 200, 100, 50, 1.0],
    )


def test_with_parameter_copies(stroke):
    probe = stroke.with_parameter('p1.radius', 9.0)
    assert probe.p1.radius == 9.0
    assert stroke.p1.radius == 4.0
    probe2 = stroke.with_parameter('alpha', 0.5)
    assert probe2.alpha == 0.5 and stroke.alpha == 1.0


def test_copy_is_deep(stroke):
    dup = stroke.copy()
    dup.p0.x = 99.0
    dup.color.r = 0.0
    assert stroke.p0.x == 10.0
    assert stroke.color.r == 200.0


def test_average_and_max_radius(stroke):
    assert stroke.average_radius() == pytest.approx(4.0)
    assert stroke.max_radius() == 5.0


def test_clamp(stroke, bounds):
    stroke.p0.x = -5.0
    stroke.p2.y = 100.0
    stroke.p1.radius = 50.0
    stroke.color.g = 300.0
    stroke.alpha = 0.1
    assert not stroke.is_within(bounds)
    clamped = stroke.clamped(bounds)
    assert clamped.p0.x == 0.0
    assert clamped.p2.y == 40.0
    assert clamped.p1.radius == 10.0
    assert clamped.color.g == 255.0
    assert clamped.alpha == 0.5
    assert clamped.is_within(bounds)
    # clamped() does not touch the original
    assert stroke.p0.x == -5.0


def test_sample_centerline(stroke):
    samples = stroke.sample_centerline(20)
    assert samples.shape == (21, 3)
    np.testing.assert_allclose(samples[0], (10, 20, 3))
    np.testing.assert_allclose(samples[-1], (50, 20, 5))


def test_draw_paints_along_curve(stroke):
    surface = RasterSurface(64, 40, background=(255, 255, 255))
    stroke.draw(surface)
    px = surface.get_image_data()
    assert tuple(px[20, 30, :3]) == (200, 100, 50)
    assert tuple(px[20, 10, :3]) == (200, 100, 50)
    assert tuple(px[5, 30, :3]) == (255, 255, 255)
    assert tuple(px[20, 60, :3]) == (255, 255, 255)
    # draw() leaves the surface style as it was
    assert surface.global_alpha == 1.0
    assert surface.fill_style == (0.0, 0.0, 0.0)


def test_semi_transparent_overlap_accumulates(stroke):
    """Shapes inside one stroke composite separately, so joints are darker than alpha alone."""
    stroke.color = Color(0.0, 0.0, 0.0)
    stroke.alpha = 0.5
    surface = RasterSurface(64, 40, background=(255, 255, 255))
    stroke.draw(surface)
    center = int(surface.get_image_data()[20, 30, 0])
    assert center < 128


def test_zero_length_stroke_draws_start_cap():
    dot = Stroke(Point(8, 8, 3), Point(8, 8, 3), Point(8, 8, 3), Color(0, 0, 0), 1.0)
    surface = RasterSurface(16, 16, background=(255, 255, 255))
    dot.draw(surface)
    px = surface.get_image_data()
    assert tuple(px[8, 8, :3]) == (0, 0, 0)
    assert tuple(px[0, 0, :3]) == (255, 255, 255)


def test_dict_round_trip(stroke):
    d = stroke.to_dict()
    StrokeV1(index=0, **d)
    assert Stroke.from_dict(d) == stroke


def test_replace_builders(stroke):
    moved = stroke.replace(p1=stroke.p1.replace(x=33.0), alpha=0.7)
    assert moved.p1.x == 33.0 and moved.p1.y == 20.0
    assert moved.alpha == 0.7
    assert stroke.p1.x == 30.0 and stroke.alpha == 1.0
    moved.p0.x = 0.0
    assert stroke.p0.x == 10.0
