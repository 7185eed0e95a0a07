"""Lightweight wall-clock profiling.

Provides:
    - timer(): context manager for wall-clock timing with an optional sink

Used to measure whole painting sessions (elapsed_s in the scripts/paint.py
summary).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds). If None, the elapsed time
        is logged at DEBUG level.

    Examples
    --------
    >>> timings = {}
    >>> with timer("session", sink=timings.__setitem__):
    ...     scheduler.run()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.debug(f"{name}: {elapsed:.3f} s")
