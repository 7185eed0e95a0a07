"""Painting session: candidate selection, refinement and finalization.

State machine (one transition per tick):
    IDLE ──tick──▶ SELECTING ──▶ REFINING ──(converged)──▶ finalize ──▶ IDLE
      │                                                          │
      └──(no target / total ≤ threshold / max strokes)──▶ STOPPED ◀── stop()

Selecting (one tick):
    - Sample a target pixel proportionally to the difference map
    - Snapshot the canvas as background
    - Score n_candidates candidates with full-canvas cost, keep the cheapest
    - The winner becomes the stroke in progress; its cost seeds the global
      cost estimate

Refining (iterations_per_frame steps per tick):
    - GradientRefiner.step(); status callback after each step
    - Finalize on convergence

Finalize:
    - Estimate worse than the committed total → restore background (bit-exact)
    - Otherwise draw, re-read the canvas, rebuild the difference map. If the
      exact total came out worse than before (the estimate only tracks the
      refinement box), the commit is rolled back as a discard.

Hatch runs:
    After a committed non-hatch stroke, with probability hatch_probability a
    run of 2-4 parallel copies is queued. Each hatch is scored once over the
    full canvas and finalized in the same tick without refinement; a
    discarded hatch ends the run.

Errors:
    - Setup failures (bad reference, size mismatch) call on_error and raise
      SessionSetupError from the constructor
    - SurfaceError during a tick calls on_error and stops the session; with
      no on_error the exception propagates
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import cv2
import numpy as np

from ..raster.surface import RasterSurface, SurfaceError
from ..utils import metrics
from ..utils.torch_utils import make_rng
from ..utils.validators import OptimizerConfigV1
from .candidates import CandidateGenerator, StrokeStrategy
from .cost import CostEvaluator
from .difference import DifferenceMap, TargetPixel
from .refiner import GradientRefiner
from .stroke import Stroke, StrokeBounds

logger = logging.getLogger(__name__)


class SessionSetupError(RuntimeError):
    """Session could not be initialised (reference unusable, surface unreadable)."""


class SessionState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    REFINING = "refining"
    STOPPED = "stopped"


@dataclass
class StrokeProgress:
    """Bookkeeping for the stroke in progress."""
    stroke: Stroke
    strategy: StrokeStrategy
    global_cost: float
    steps: int = 0


@dataclass
class SessionStats:
    committed: int = 0
    discarded: int = 0
    hatches_committed: int = 0
    ticks: int = 0
    refinement_steps: int = 0
    initial_difference: float = 0.0
    strategies: Dict[str, int] = field(default_factory=dict)


StatusCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]


def prepare_reference(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Convert an image to canvas-sized (H, W, 4) uint8 RGBA.

    Accepts (H, W), (H, W, 3) or (H, W, 4) uint8 arrays; resizes with area
    interpolation when the size differs from the canvas.
    """
    image = np.asarray(image)
    if image.dtype != np.uint8:
        raise ValueError(f"Reference must be uint8, got {image.dtype}")
    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)
    if image.ndim != 3 or image.shape[2] not in (3, 4) or image.shape[0] == 0 or image.shape[1] == 0:
        raise ValueError(f"Reference must be (H, W), (H, W, 3) or (H, W, 4), got {image.shape}")
    if image.shape[2] == 3:
        alpha = np.full(image.shape[:2] + (1,), 255, dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=-1)
    if image.shape[:2] != (height, width):
        image = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)
    return np.ascontiguousarray(image)


class BrushOptimizer:
    """Stochastic stroke-by-stroke painter driven by tick().

    Parameters
    ----------
    surface : RasterSurface
        Canvas to paint on; cleared to background_color on construction
    reference : np.ndarray
        Reference image, uint8, (H, W[, 3|4]); resized to the surface
    config : OptimizerConfigV1, optional
        Session configuration; defaults when None
    rng : np.random.Generator, optional
        Randomness source; built from config.seed when None
    on_status : callable, optional
        Called with a progress string after every refinement step and on stop
    on_error : callable, optional
        Called with the exception on setup or tick-time surface failures

    Raises
    ------
    SessionSetupError
        If the reference cannot be prepared or read back
    """

    def __init__(
        self,
        surface: RasterSurface,
        reference: np.ndarray,
        config: Optional[OptimizerConfigV1] = None,
        rng: Optional[np.random.Generator] = None,
        on_status: Optional[StatusCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.config = config or OptimizerConfigV1()
        self.surface = surface
        self.on_status = on_status
        self.on_error = on_error
        self.rng = rng if rng is not None else make_rng(self.config.seed)

        self.width = surface.width
        self.height = surface.height

        try:
            prepared = prepare_reference(reference, self.width, self.height)
            # Read back through a surface so reference and canvas share a pixel layout
            self.reference = RasterSurface.from_array(prepared).get_image_data()

            self.surface.clear(self.config.background_color)
            self.current = self.surface.get_image_data()
        except (ValueError, cv2.error, SurfaceError) as exc:
            error = SessionSetupError(f"Failed to set up painting session: {exc}")
            if self.on_error is not None:
                self.on_error(error)
            raise error from exc

        self.bounds = StrokeBounds(
            width=self.width,
            height=self.height,
            radius_range=tuple(self.config.brush_radius_range),
            alpha_range=tuple(self.config.alpha_range),
        )
        self.difference = DifferenceMap(self.width, self.height, self.config.color_difference_method)
        self.evaluator = CostEvaluator(
            surface,
            self.reference,
            self.config.color_difference_method,
            self.config.bezier_subdivisions,
        )
        self.candidates = CandidateGenerator(self.config, self.bounds, self.reference, self.rng)
        self.refiner = GradientRefiner(self.evaluator, self.bounds, self.config.refinement)

        self.state = SessionState.IDLE
        self.progress: Optional[StrokeProgress] = None
        self.last_successful_stroke: Optional[Stroke] = None
        self.stroke_log: List[Dict[str, Any]] = []
        self.hatches_remaining = 0
        self.hatch_side = 1
        self._running = False

        self.stats = SessionStats()
        self.stats.initial_difference = self.recompute_difference_map()
        logger.info(
            f"Session ready: {self.width}x{self.height}, "
            f"method={self.difference.method.value}, total difference={self.total_difference:.0f}"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def total_difference(self) -> float:
        return self.difference.total

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_stroke(self) -> Optional[Stroke]:
        return self.progress.stroke if self.progress is not None else None

    @property
    def stroke_count(self) -> int:
        return self.stats.committed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.state is SessionState.STOPPED:
            logger.warning("start() on a stopped session ignored")
            return
        self._running = True
        logger.info("Painting session started")

    def stop(self, reason: str = "stopped") -> None:
        """Halt the session; the canvas keeps whatever the last completed step produced."""
        if self.state is SessionState.STOPPED:
            return
        self._running = False
        self.state = SessionState.STOPPED
        logger.info(
            f"Painting session stopped ({reason}): {self.stats.committed} strokes committed, "
            f"{self.stats.discarded} discarded, total difference={self.total_difference:.0f}"
        )
        self._status(f"Optimization complete ({reason})")

    def abandon_stroke(self) -> bool:
        """Drop the stroke in progress, restoring the canvas it was drawn over.

        Leaves the canvas, difference map and stroke log describing the same
        committed strokes. Session state is kept (a stopped session stays
        stopped).

        Returns
        -------
        bool
            True if a stroke was in progress
        """
        progress = self.progress
        if progress is None:
            return False
        self.evaluator.restore_background()
        logger.debug(
            f"Abandoned {progress.strategy.value} stroke after {progress.steps} steps"
        )
        state = self.state
        self._end_stroke()
        if state is SessionState.STOPPED:
            self.state = state
        return True

    def destroy(self) -> None:
        """Stop and release buffers and callbacks."""
        self.stop("destroyed")
        self.on_status = None
        self.on_error = None
        self.progress = None
        self.evaluator.clear_background()

    def tick(self) -> bool:
        """Advance the session by one unit of work.

        Returns
        -------
        bool
            True while more ticks are useful, False once stopped
        """
        if not self._running or self.state is SessionState.STOPPED:
            return False

        self.stats.ticks += 1
        try:
            if self.progress is None:
                self._start_new_stroke()
            else:
                for _ in range(max(1, self.config.iterations_per_frame)):
                    self._refine_step()
                    if self.progress is None:
                        break
        except SurfaceError as exc:
            logger.error(f"Surface failure during tick: {exc}")
            if self.on_error is None:
                self.stop("surface error")
                raise
            self.on_error(exc)
            self.stop("surface error")
            return False

        return self.state is not SessionState.STOPPED

    # ------------------------------------------------------------------
    # Selecting
    # ------------------------------------------------------------------

    def _should_stop(self) -> Optional[str]:
        if self.total_difference <= self.config.stop_threshold:
            return "difference exhausted"
        max_strokes = self.config.max_strokes
        if max_strokes is not None and self.stats.committed >= max_strokes:
            return "stroke limit reached"
        return None

    def _start_new_stroke(self) -> None:
        reason = self._should_stop()
        if reason is not None:
            self.stop(reason)
            return

        if self.hatches_remaining > 0 and self.last_successful_stroke is not None:
            self._paint_hatch()
            return

        target = self.difference.sample_target_pixel(self.rng)
        if target is None:
            self.stop("no target pixel")
            return

        self.state = SessionState.SELECTING
        self.evaluator.capture_background()
        self.progress = self._select_candidate(target)
        self.state = SessionState.REFINING

    def _select_candidate(self, target: TargetPixel) -> StrokeProgress:
        best: Optional[StrokeProgress] = None
        for _ in range(self.config.n_candidates):
            strategy, candidate = self.candidates.generate(target, self.last_successful_stroke)
            cost = self.evaluator.evaluate(candidate)
            if best is None or cost < best.global_cost:
                best = StrokeProgress(stroke=candidate, strategy=strategy, global_cost=cost)

        key = best.strategy.value
        self.stats.strategies[key] = self.stats.strategies.get(key, 0) + 1
        logger.debug(
            f"Selected {best.strategy.value} stroke at ({target.x}, {target.y}), "
            f"cost {best.global_cost:.0f} vs total {self.total_difference:.0f}"
        )
        return best

    def _paint_hatch(self) -> None:
        self.state = SessionState.SELECTING
        self.evaluator.capture_background()
        candidate = self.candidates.hatch(self.last_successful_stroke, self.hatch_side)
        cost = self.evaluator.evaluate(candidate)
        self.progress = StrokeProgress(stroke=candidate, strategy=StrokeStrategy.HATCH, global_cost=cost)
        self._finalize()

    # ------------------------------------------------------------------
    # Refining
    # ------------------------------------------------------------------

    def _refine_step(self) -> None:
        progress = self.progress
        result = self.refiner.step(progress.stroke, progress.global_cost, progress.steps)
        if result.skipped:
            logger.warning("Degenerate refinement box; discarding stroke")
            self._discard()
            return

        progress.global_cost = result.global_cost
        progress.steps = result.steps
        self.stats.refinement_steps += 1
        self._status(
            f"Stroke {self.stats.committed + 1} · Step {progress.steps} · Cost {progress.global_cost:.0f}"
        )

        if result.converged:
            self._finalize()

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self) -> None:
        progress = self.progress
        if progress.global_cost > self.total_difference:
            self._discard()
            return

        self.evaluator.render(progress.stroke)
        previous = self.difference.snapshot()
        current = self.surface.get_image_data()
        new_total = self.difference.recompute(self.reference, current)

        if new_total > previous[1]:
            self.difference.restore(previous)
            logger.debug(f"Commit rolled back: exact total {new_total:.0f} > {previous[1]:.0f}")
            self._discard()
            return

        self.current = current
        self.last_successful_stroke = progress.stroke.copy()
        self.stats.committed += 1
        if progress.strategy is StrokeStrategy.HATCH:
            self.stats.hatches_committed += 1
            self.hatches_remaining -= 1
        else:
            self._maybe_start_hatch_run()

        entry = {'index': len(self.stroke_log)}
        entry.update(progress.stroke.to_dict())
        self.stroke_log.append(entry)
        logger.debug(
            f"Committed stroke {self.stats.committed} ({progress.strategy.value}, "
            f"{progress.steps} steps): total difference {previous[1]:.0f} → {new_total:.0f}"
        )

        self._end_stroke()

    def _discard(self) -> None:
        progress = self.progress
        self.evaluator.restore_background()
        self.stats.discarded += 1
        if progress.strategy is StrokeStrategy.HATCH:
            self.hatches_remaining = 0
        logger.debug(
            f"Discarded {progress.strategy.value} stroke: estimate {progress.global_cost:.0f} "
            f"vs total {self.total_difference:.0f}"
        )
        self._end_stroke()

    def _end_stroke(self) -> None:
        self.progress = None
        self.evaluator.clear_background()
        self.state = SessionState.IDLE

    def _maybe_start_hatch_run(self) -> None:
        if self.rng.random() >= self.config.hatch_probability:
            return
        lo, hi = self.config.hatch_run_range
        self.hatches_remaining = int(self.rng.integers(lo, hi + 1))
        self.hatch_side = 1 if self.rng.random() < 0.5 else -1
        logger.debug(f"Hatch run of {self.hatches_remaining} queued on side {self.hatch_side:+d}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def recompute_difference_map(self) -> float:
        """Re-read the whole canvas and rebuild the difference map."""
        self.current = self.surface.get_image_data()
        return self.difference.recompute(self.reference, self.current)

    def quality_report(self) -> Dict[str, Any]:
        """Method-independent quality metrics plus session counters."""
        report = metrics.compute_all_metrics(self.reference, self.surface.get_image_data())
        report.update({
            'strokes': self.stats.committed,
            'discarded': self.stats.discarded,
            'hatches': self.stats.hatches_committed,
            'ticks': self.stats.ticks,
            'refinement_steps': self.stats.refinement_steps,
            'initial_difference': self.stats.initial_difference,
            'total_difference': self.total_difference,
            'strategies': dict(self.stats.strategies),
        })
        return report

    def _status(self, text: str) -> None:
        if self.on_status is not None:
            self.on_status(text)
