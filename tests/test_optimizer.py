"""Test the painting session state machine.

Tests for brush_painter.optimization.optimizer and scheduler:
    - Setup: canvas cleared to background, reference prepared, errors reported
    - Tick lifecycle: Idle → Selecting → Refining → Idle, Stopped terminal
    - Discarded strokes leave the canvas bit-identical to the background
    - Committed strokes never increase the Total Difference
    - Solid-color reference: Total Difference drops after committed strokes
    - Identical images under the contrast metric stop immediately
    - max_strokes cap, stop(), destroy()
    - Surface failures mid-tick: on_error + Stopped, or propagation
    - Hatch runs: committed hatches are exact parallel offsets, run counter
    - Abandoning the stroke in progress restores the canvas
    - Stroke log, quality report
    - FrameScheduler tick budget and frame callback

Run:
    pytest tests/test_optimizer.py -v
"""

import numpy as np
import pytest

from brush_painter.optimization import (
    BrushOptimizer,
    FrameScheduler,
    SessionSetupError,
    SessionState,
    StrokeStrategy,
)
from brush_painter.optimization.stroke import Color, Point, Stroke
from brush_painter.raster import RasterSurface, SurfaceReadbackError
from brush_painter.utils.color import ColorDifferenceMethod
from brush_painter.utils.validators import OptimizerConfigV1, RefinementConfig, StrokesFileV1

W, H = 50, 50


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def solid_reference():
    ref = np.empty((H, W, 3), dtype=np.uint8)
    ref[...] = (200, 100, 50)
    return ref


@pytest.fixture
def fast_config():
    """Few candidates, short refinement: keeps sessions quick."""
    return OptimizerConfigV1(
        n_candidates=8,
        brush_radius_range=(1.0, 20.0),
        hatch_probability=0.0,
        refinement=RefinementConfig(max_steps=3),
    )


@pytest.fixture
def make_optimizer(solid_reference, fast_config):
    def _make(config=None, reference=None, seed=0, **kwargs):
        surface = RasterSurface(W, H)
        return BrushOptimizer(
            surface,
            solid_reference if reference is None else reference,
            config=config or fast_config,
            rng=np.random.default_rng(seed),
            **kwargs,
        )
    return _make


# ============================================================================
# SETUP
# ============================================================================

def test_setup_clears_canvas_and_computes_total(make_optimizer):
    opt = make_optimizer()
    assert np.all(opt.surface.get_image_data()[..., :3] == 255)
    assert opt.state is SessionState.IDLE
    assert not opt.is_running
    expected = W * H * (55 ** 2 + 155 ** 2 + 205 ** 2)
    assert opt.total_difference == pytest.approx(expected)
    assert opt.stats.initial_difference == opt.total_difference


def test_reference_is_resized_to_canvas(make_optimizer):
    small = np.zeros((10, 12, 4), dtype=np.uint8)
    small[..., 3] = 255
    opt = make_optimizer(reference=small)
    assert opt.reference.shape == (H, W, 4)


def test_setup_failure_reports_and_raises(make_optimizer):
    errors = []
    with pytest.raises(SessionSetupError):
        make_optimizer(reference=np.zeros((4, 4, 3), dtype=np.float32), on_error=errors.append)
    assert len(errors) == 1
    assert isinstance(errors[0], SessionSetupError)


def test_tick_requires_start(make_optimizer):
    opt = make_optimizer()
    assert opt.tick() is False
    assert opt.progress is None


# ============================================================================
# STATE MACHINE
# ============================================================================

def test_first_tick_selects_then_refines(make_optimizer):
    opt = make_optimizer()
    opt.start()
    assert opt.tick() is True
    assert opt.state is SessionState.REFINING
    assert opt.current_stroke is not None
    assert opt.progress.steps == 0
    assert opt.progress.strategy is StrokeStrategy.FRESH

    assert opt.tick() is True
    assert opt.progress is None or opt.progress.steps == 1


def test_stroke_finalizes_within_max_steps(make_optimizer):
    opt = make_optimizer()
    opt.start()
    opt.tick()
    for _ in range(3):
        opt.tick()
    assert opt.progress is None
    assert opt.state is SessionState.IDLE
    assert opt.stats.committed + opt.stats.discarded == 1


def test_status_callback_per_step(make_optimizer):
    messages = []
    opt = make_optimizer(on_status=messages.append)
    opt.start()
    opt.tick()
    opt.tick()
    assert any("Step 1" in m and "Cost" in m for m in messages)


def test_iterations_per_frame_batches_steps(make_optimizer, fast_config):
    cfg = fast_config.model_copy(update={'iterations_per_frame': 5})
    opt = make_optimizer(config=cfg)
    opt.start()
    opt.tick()
    opt.tick()
    # max_steps=3 < 5: one tick refines to convergence
    assert opt.progress is None


# ============================================================================
# SCENARIOS
# ============================================================================

def test_solid_color_reference_improves(make_optimizer):
    opt = make_optimizer()
    initial = opt.total_difference
    ticks = FrameScheduler(opt).run(max_ticks=40)
    assert ticks <= 40
    assert opt.stats.committed >= 1
    assert opt.total_difference < initial
    mean = opt.surface.get_image_data()[..., :3].reshape(-1, 3).mean(axis=0)
    # Mean color moved from white toward (200, 100, 50)
    assert mean[1] < 255 and mean[2] < 255


def test_committed_strokes_never_increase_total(make_optimizer):
    opt = make_optimizer(seed=5)
    opt.start()
    totals = [opt.total_difference]
    committed = 0
    for _ in range(40):
        opt.tick()
        if opt.stats.committed != committed:
            committed = opt.stats.committed
            totals.append(opt.total_difference)
    assert all(b <= a for a, b in zip(totals, totals[1:]))


def test_discard_restores_background_bit_exact(make_optimizer):
    opt = make_optimizer()
    opt.start()
    opt.tick()
    background = opt.evaluator.background.copy()
    total_before = opt.total_difference
    # Force the estimate above the committed total
    opt.progress.global_cost = total_before + 1.0
    opt._finalize()
    np.testing.assert_array_equal(opt.surface.get_image_data(), background)
    assert opt.total_difference == total_before
    assert opt.stats.discarded == 1
    assert opt.state is SessionState.IDLE


def test_contrast_identical_images_stop_immediately(make_optimizer, fast_config):
    white = np.full((H, W, 3), 255, dtype=np.uint8)
    cfg = fast_config.model_copy(update={'color_difference_method': ColorDifferenceMethod.CONTRAST})
    opt = make_optimizer(config=cfg, reference=white)
    assert opt.total_difference == 0.0
    opt.start()
    assert opt.tick() is False
    assert opt.state is SessionState.STOPPED
    assert opt.stats.committed == 0
    assert np.all(opt.surface.get_image_data() == 255)


def test_identical_images_rgb_stop_immediately(make_optimizer):
    opt = make_optimizer(reference=np.full((H, W, 3), 255, dtype=np.uint8))
    assert FrameScheduler(opt).run(max_ticks=10) == 1
    assert opt.state is SessionState.STOPPED


def test_max_strokes_cap(make_optimizer, fast_config):
    cfg = fast_config.model_copy(update={'max_strokes': 1})
    opt = make_optimizer(config=cfg)
    FrameScheduler(opt).run(max_ticks=200)
    assert opt.stats.committed <= 1
    assert opt.state is SessionState.STOPPED


# ============================================================================
# LIFECYCLE AND ERRORS
# ============================================================================

def test_stop_keeps_canvas_and_is_terminal(make_optimizer):
    messages = []
    opt = make_optimizer(on_status=messages.append)
    opt.start()
    opt.tick()
    canvas = opt.surface.get_image_data()
    opt.stop()
    assert opt.state is SessionState.STOPPED
    assert opt.tick() is False
    np.testing.assert_array_equal(opt.surface.get_image_data(), canvas)
    assert "Optimization complete" in messages[-1]
    opt.start()
    assert not opt.is_running


def test_destroy_releases_callbacks(make_optimizer):
    opt = make_optimizer(on_status=lambda m: None)
    opt.start()
    opt.tick()
    opt.destroy()
    assert opt.on_status is None
    assert opt.progress is None
    assert opt.evaluator.background is None


def test_surface_error_calls_on_error_and_stops(make_optimizer, monkeypatch):
    errors = []
    opt = make_optimizer(on_error=errors.append)

    def broken(*args, **kwargs):
        raise SurfaceReadbackError("readback failed")

    monkeypatch.setattr(opt.evaluator, 'evaluate', broken)
    opt.start()
    assert opt.tick() is False
    assert opt.state is SessionState.STOPPED
    assert len(errors) == 1 and isinstance(errors[0], SurfaceReadbackError)


def test_surface_error_propagates_without_handler(make_optimizer, monkeypatch):
    opt = make_optimizer()

    def broken(*args, **kwargs):
        raise SurfaceReadbackError("readback failed")

    monkeypatch.setattr(opt.evaluator, 'evaluate', broken)
    opt.start()
    with pytest.raises(SurfaceReadbackError):
        opt.tick()
    assert opt.state is SessionState.STOPPED


def test_skipped_refinement_discards_stroke(make_optimizer, monkeypatch):
    from brush_painter.utils.geometry import BBox

    opt = make_optimizer()
    opt.start()
    opt.tick()
    background = opt.evaluator.background.copy()
    monkeypatch.setattr(opt.refiner, 'refinement_bbox', lambda s: BBox(0, 0, 0, 0))
    opt.tick()
    assert opt.progress is None
    assert opt.stats.discarded == 1
    np.testing.assert_array_equal(opt.surface.get_image_data(), background)


# ============================================================================
# HATCHING, LOG, REPORT
# ============================================================================

def test_hatch_run_after_commit(make_optimizer, fast_config):
    cfg = fast_config.model_copy(update={'hatch_probability': 1.0, 'hatch_run_range': (2, 2)})
    opt = make_optimizer(config=cfg, seed=3)
    opt.start()
    for _ in range(200):
        if opt.stats.committed or not opt.tick():
            break
    assert opt.stats.committed == 1
    assert opt.hatches_remaining == 2
    assert opt.hatch_side in (1, -1)

    # Hatch ticks finalize immediately without a refinement phase
    previous = opt.last_successful_stroke.copy()
    expected = opt.candidates.hatch(previous, opt.hatch_side)
    opt.tick()
    assert opt.progress is None
    if opt.stats.hatches_committed:
        assert opt.hatches_remaining == 1
        assert opt.last_successful_stroke == expected
    else:
        # A discarded hatch ends the run
        assert opt.hatches_remaining == 0
        assert opt.stats.discarded == 1


def test_committed_hatch_is_parallel_offset(make_optimizer):
    """Shifted by spacing + 2 * avg radius along the chord normal; color and alpha kept."""
    opt = make_optimizer()
    previous = Stroke(
        p0=Point(15.0, 25.0, 3.0),
        p1=Point(25.0, 25.0, 3.0),
        p2=Point(35.0, 25.0, 3.0),
        color=Color(200.0, 100.0, 50.0),
        alpha=1.0,
    )
    opt.last_successful_stroke = previous.copy()
    opt.hatches_remaining = 2
    opt.hatch_side = 1
    expected = opt.candidates.hatch(previous, 1)

    opt.start()
    opt.tick()

    assert opt.stats.hatches_committed == 1
    assert opt.stats.committed == 1
    assert opt.hatches_remaining == 1
    hatch = opt.last_successful_stroke
    assert hatch == expected
    assert hatch.color == previous.color
    assert hatch.alpha == previous.alpha

    # Chord p0→p2 runs along +x, so its unit normal is (0, 1)
    offset = opt.config.hatch_spacing + 2.0 * previous.average_radius()
    for moved, original in zip(hatch.points, previous.points):
        assert moved.x == pytest.approx(original.x)
        assert moved.y == pytest.approx(original.y + offset)
        assert moved.radius == original.radius

    assert opt.stroke_log[-1] == {"index": 0, **expected.to_dict()}

    opt.tick()
    assert opt.hatches_remaining == 0


def test_abandon_stroke_restores_background(make_optimizer):
    opt = make_optimizer()
    assert opt.abandon_stroke() is False
    opt.start()
    opt.tick()
    assert opt.progress is not None
    background = opt.evaluator.background.copy()

    opt.stop("budget")
    assert opt.abandon_stroke() is True
    assert opt.progress is None
    assert opt.state is SessionState.STOPPED
    assert opt.stroke_log == []
    np.testing.assert_array_equal(opt.surface.get_image_data(), background)
    assert opt.abandon_stroke() is False


def test_stroke_log_matches_schema(make_optimizer):
    opt = make_optimizer()
    FrameScheduler(opt).run(max_ticks=30)
    assert len(opt.stroke_log) == opt.stats.committed
    log = StrokesFileV1(schema="strokes.v1", width=W, height=H, strokes=opt.stroke_log)
    assert [s.index for s in log.strokes] == list(range(len(opt.stroke_log)))


def test_quality_report(make_optimizer):
    opt = make_optimizer()
    FrameScheduler(opt).run(max_ticks=10)
    report = opt.quality_report()
    for key in ('psnr', 'ssim', 'mae', 'strokes', 'total_difference', 'initial_difference'):
        assert key in report
    assert report['strokes'] == opt.stats.committed
    assert 0.0 <= report['mae'] <= 1.0


def test_seeded_sessions_are_reproducible(make_optimizer):
    a = make_optimizer(seed=42)
    b = make_optimizer(seed=42)
    FrameScheduler(a).run(max_ticks=12)
    FrameScheduler(b).run(max_ticks=12)
    np.testing.assert_array_equal(a.surface.get_image_data(), b.surface.get_image_data())
    assert a.stroke_log == b.stroke_log


# ============================================================================
# SCHEDULER
# ============================================================================

def test_scheduler_tick_budget_and_callback(make_optimizer):
    frames = []
    opt = make_optimizer()
    ticks = FrameScheduler(opt, on_frame=lambda i, o: frames.append(i)).run(max_ticks=5)
    assert ticks == 5
    assert frames == [1, 2, 3, 4, 5]
    assert opt.state is SessionState.STOPPED
