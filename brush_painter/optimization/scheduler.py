"""Frame-style driver for BrushOptimizer.

The optimizer never loops on its own; something has to call tick()
repeatedly. FrameScheduler is that something for batch use (CLI, tests):
one tick per frame, an optional per-frame callback, and an optional tick
budget after which the session is stopped.
"""

import logging
from typing import Callable, Optional

from .optimizer import BrushOptimizer

logger = logging.getLogger(__name__)

FrameCallback = Callable[[int, BrushOptimizer], None]


class FrameScheduler:
    """Calls optimizer.tick() until it reports completion or the budget runs out.

    Parameters
    ----------
    optimizer : BrushOptimizer
        Session to drive
    on_frame : callable, optional
        Called as on_frame(frame_index, optimizer) after every tick
    """

    def __init__(self, optimizer: BrushOptimizer, on_frame: Optional[FrameCallback] = None):
        self.optimizer = optimizer
        self.on_frame = on_frame
        self.frames = 0

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Drive the session; returns the number of ticks executed.

        When max_ticks is reached before the session finishes, the session
        is stopped.
        """
        optimizer = self.optimizer
        optimizer.start()

        ticks = 0
        while optimizer.is_running:
            if max_ticks is not None and ticks >= max_ticks:
                optimizer.stop("tick budget exhausted")
                break
            alive = optimizer.tick()
            ticks += 1
            self.frames += 1
            if self.on_frame is not None:
                self.on_frame(self.frames, optimizer)
            if not alive:
                break

        logger.info(f"Scheduler finished after {ticks} ticks ({optimizer.stroke_count} strokes)")
        return ticks
