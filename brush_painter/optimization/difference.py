"""Difference map and importance sampling of target pixels.

The map holds one non-negative float32 entry per canvas pixel (row-major)
measuring how far the canvas is from the reference there. Its sum is the
Total Difference, the global cost every committed stroke must not increase.

Sampling draws u uniformly from (0, Total] and returns the first pixel whose
running sum reaches u, so a pixel is picked with probability proportional to
its entry and zero-valued pixels are never picked.
"""

import logging
from typing import NamedTuple, Optional

import numpy as np

from ..utils.color import ColorDifferenceMethod, compute_difference_map

logger = logging.getLogger(__name__)


class TargetPixel(NamedTuple):
    """Sampled pixel: column x, row y, flat index y * width + x."""
    x: int
    y: int
    index: int


class DifferenceMap:
    """Per-pixel distance between reference and canvas, with its total.

    Parameters
    ----------
    width, height : int
        Canvas size
    method : ColorDifferenceMethod
        Per-pixel distance
    """

    def __init__(
        self,
        width: int,
        height: int,
        method: ColorDifferenceMethod = ColorDifferenceMethod.RGB_DISTANCE,
    ):
        self.width = int(width)
        self.height = int(height)
        self.method = ColorDifferenceMethod(method)
        self.values = np.zeros(self.width * self.height, dtype=np.float32)
        self.total = 0.0

    def recompute(self, reference: np.ndarray, current: np.ndarray) -> float:
        """Rebuild the map from full reference and canvas buffers; returns the total."""
        self.total = compute_difference_map(reference, current, self.values, self.method)
        return self.total

    def snapshot(self):
        """(values copy, total) for restore()."""
        return self.values.copy(), self.total

    def restore(self, snapshot) -> None:
        values, total = snapshot
        self.values[:] = values
        self.total = total

    def sample_target_pixel(self, rng: np.random.Generator) -> Optional[TargetPixel]:
        """Pick a pixel with probability proportional to its difference.

        Returns
        -------
        TargetPixel or None
            None when the total is zero (nothing left to paint)
        """
        if self.total <= 0.0:
            return None

        # (0, total]: never lands on a leading run of zeros
        u = self.total * (1.0 - rng.random())
        cumulative = np.cumsum(self.values, dtype=np.float64)
        index = int(np.searchsorted(cumulative, u, side='left'))

        # Summation order can leave cumulative[-1] a hair below total
        if index >= self.values.size:
            nonzero = np.flatnonzero(self.values)
            if nonzero.size == 0:
                return None
            index = int(nonzero[-1])

        y, x = divmod(index, self.width)
        return TargetPixel(x=x, y=y, index=index)
