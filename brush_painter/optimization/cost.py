"""Stroke cost evaluation against a background snapshot.

The evaluator renders a stroke over a fixed background (the canvas as it
was before the stroke under consideration) and measures the color
difference to the reference, either over the whole canvas or inside a
bounding box. Only pixels inside the box are read back for bounded costs.

Every evaluation leaves the surface showing background + that stroke.
"""

import logging
from typing import Optional

import numpy as np

from ..raster.surface import RasterSurface
from ..utils.color import ColorDifferenceMethod, patch_cost
from ..utils.geometry import BBox, radius_points_bbox
from .stroke import Stroke

logger = logging.getLogger(__name__)


class CostEvaluator:
    """Scores strokes on a surface over a background snapshot.

    Parameters
    ----------
    surface : RasterSurface
        Drawing target; mutated by every evaluation
    reference : np.ndarray
        Reference pixels, shape (H, W, 4), uint8, surface-sized
    method : ColorDifferenceMethod
        Per-pixel distance
    n_divisions : int
        Centerline samples used to draw strokes
    """

    def __init__(
        self,
        surface: RasterSurface,
        reference: np.ndarray,
        method: ColorDifferenceMethod = ColorDifferenceMethod.RGB_DISTANCE,
        n_divisions: int = 20,
    ):
        self.surface = surface
        self.reference = reference
        self.method = ColorDifferenceMethod(method)
        self.n_divisions = n_divisions
        self.background: Optional[np.ndarray] = None
        self.evaluations = 0

    def capture_background(self) -> np.ndarray:
        """Snapshot the whole surface as the background for following evaluations."""
        self.background = self.surface.get_image_data(0, 0, self.surface.width, self.surface.height)
        return self.background

    def restore_background(self) -> None:
        """Put the snapshot back; the surface becomes bit-identical to it."""
        if self.background is None:
            raise RuntimeError("No background captured; call capture_background() first")
        self.surface.put_image_data(self.background, 0, 0)

    def clear_background(self) -> None:
        self.background = None

    def render(self, stroke: Stroke) -> None:
        """Restore the background and draw stroke on top of it."""
        self.restore_background()
        stroke.draw(self.surface, self.n_divisions)

    def evaluate(self, stroke: Stroke, bbox: Optional[BBox] = None) -> float:
        """Cost of background + stroke, over bbox or the whole canvas.

        Raises
        ------
        SurfaceReadbackError
            If bbox is empty or leaves the surface
        """
        self.render(stroke)
        self.evaluations += 1
        if bbox is None:
            bbox = BBox(0, 0, self.surface.width, self.surface.height)

        current = self.surface.get_image_data(bbox.x, bbox.y, bbox.w, bbox.h)
        reference = self.reference[bbox.y:bbox.y + bbox.h, bbox.x:bbox.x + bbox.w]
        return patch_cost(reference, current, self.method)

    def local_bbox(self, stroke: Stroke, margin: float) -> BBox:
        """Control-point extent padded by the largest radius plus margin, clipped to the canvas."""
        return radius_points_bbox(
            [p.as_tuple() for p in stroke.points],
            self.surface.width,
            self.surface.height,
            margin=margin,
        )
