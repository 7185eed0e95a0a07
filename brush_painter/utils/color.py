"""Color difference metrics between reference and canvas pixels.

Provides:
    - Scalar distances on already-subtracted channel differences (dr, dg, db)
    - Per-pixel difference maps over whole RGBA buffers
    - Region (patch) costs for bounded cost evaluation
    - Palette helpers for restricted-color painting

Methods (ColorDifferenceMethod):
    - rgb_distance: squared Euclidean distance dr² + dg² + db² (default)
    - contrast: squared difference of horizontal/vertical finite-difference
      gradients, summed over R, G, B. Evaluated on the (w-1)×(h-1) interior;
      entries in the last row and column are zero (no wraparound).
    - lightness: squared difference of Rec.601 lightness

Used by:
    - DifferenceMap: bulk map + total difference after each committed stroke
    - CostEvaluator: full-canvas and bounding-box costs
    - CandidateGenerator: palette snapping in specified-palette mode

All buffers are numpy uint8 arrays of shape (H, W, 4) or (H, W, 3); only the
first three channels are compared. Arithmetic is done in int64/float64 so
uint8 subtraction never wraps.
"""

from enum import Enum
from typing import Sequence, Tuple

import numpy as np


class ColorDifferenceMethod(str, Enum):
    """Per-pixel distance used for the difference map and stroke cost."""
    RGB_DISTANCE = "rgb_distance"
    CONTRAST = "contrast"
    LIGHTNESS = "lightness"


class ColorPaletteMode(str, Enum):
    """How fresh strokes pick their base color."""
    ANY = "any"
    SPECIFIED = "specified"


# Rec.601 luma weights
_LIGHTNESS_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def rgb_distance_sq(dr, dg, db):
    """Squared Euclidean RGB distance. Works on scalars and arrays."""
    return dr * dr + dg * dg + db * db


def rgb_distance(dr, dg, db):
    """Euclidean RGB distance."""
    return np.sqrt(rgb_distance_sq(dr, dg, db))


def cheap_lightness(r, g, b):
    """Approximate perceived lightness (Rec.601 luma) in [0, 255]."""
    return 0.299 * r + 0.587 * g + 0.114 * b


def lightness_distance_sq(dr, dg, db):
    """Squared lightness difference from channel differences.

    Lightness is linear in RGB, so the lightness of the difference equals
    the difference of the lightnesses.
    """
    dl = cheap_lightness(dr, dg, db)
    return dl * dl


def _rgb(buf: np.ndarray) -> np.ndarray:
    """View first three channels as int64 (H, W, 3)."""
    if buf.ndim != 3 or buf.shape[2] < 3:
        raise ValueError(f"Expected (H, W, 3|4) pixel buffer, got shape {buf.shape}")
    return buf[..., :3].astype(np.int64)


def _contrast_map(reference: np.ndarray, current: np.ndarray) -> np.ndarray:
    """Gradient-difference map, zero on the last row and column."""
    ref = _rgb(reference)
    cur = _rgb(current)
    h, w = ref.shape[:2]
    out = np.zeros((h, w), dtype=np.float64)
    if h < 2 or w < 2:
        return out

    # Forward differences restricted to the interior
    ref_gx = ref[:-1, 1:] - ref[:-1, :-1]
    ref_gy = ref[1:, :-1] - ref[:-1, :-1]
    cur_gx = cur[:-1, 1:] - cur[:-1, :-1]
    cur_gy = cur[1:, :-1] - cur[:-1, :-1]

    dgx = ref_gx - cur_gx
    dgy = ref_gy - cur_gy
    out[:-1, :-1] = (dgx * dgx + dgy * dgy).sum(axis=2)
    return out


def pixel_distance_map(
    reference: np.ndarray,
    current: np.ndarray,
    method: ColorDifferenceMethod = ColorDifferenceMethod.RGB_DISTANCE,
) -> np.ndarray:
    """Compute per-pixel distance between two equally-sized buffers.

    Parameters
    ----------
    reference : np.ndarray
        Reference pixels, shape (H, W, 3|4), uint8
    current : np.ndarray
        Canvas pixels, same height/width as reference
    method : ColorDifferenceMethod
        Distance to compute

    Returns
    -------
    np.ndarray
        Distance map, shape (H, W), float64
    """
    if reference.shape[:2] != current.shape[:2]:
        raise ValueError(
            f"Buffer size mismatch: reference {reference.shape[:2]} vs current {current.shape[:2]}"
        )

    method = ColorDifferenceMethod(method)
    if method is ColorDifferenceMethod.CONTRAST:
        return _contrast_map(reference, current)

    diff = _rgb(reference) - _rgb(current)
    dr, dg, db = diff[..., 0], diff[..., 1], diff[..., 2]
    if method is ColorDifferenceMethod.LIGHTNESS:
        return lightness_distance_sq(dr, dg, db).astype(np.float64)
    return rgb_distance_sq(dr, dg, db).astype(np.float64)


def compute_difference_map(
    reference: np.ndarray,
    current: np.ndarray,
    out: np.ndarray,
    method: ColorDifferenceMethod = ColorDifferenceMethod.RGB_DISTANCE,
) -> float:
    """Fill a flat difference map and return its sum.

    Parameters
    ----------
    reference : np.ndarray
        Reference pixels, shape (H, W, 4), uint8
    current : np.ndarray
        Canvas pixels, shape (H, W, 4), uint8
    out : np.ndarray
        Destination, shape (H*W,), float32; written in place (row-major)
    method : ColorDifferenceMethod
        Distance to compute

    Returns
    -------
    float
        Sum of the written entries (Total Difference)
    """
    dist = pixel_distance_map(reference, current, method)
    if out.size != dist.size:
        raise ValueError(f"Output map has {out.size} entries, expected {dist.size}")
    out[:] = dist.reshape(-1)
    # Sum what was stored so the total matches the map exactly
    return float(out.sum(dtype=np.float64))


def patch_cost(
    reference_patch: np.ndarray,
    current_patch: np.ndarray,
    method: ColorDifferenceMethod = ColorDifferenceMethod.RGB_DISTANCE,
) -> float:
    """Sum of per-pixel distances over a region.

    Both patches must cover the same region of their images. For the
    contrast method, gradients are taken inside the patch only.
    """
    return float(pixel_distance_map(reference_patch, current_patch, method).sum())


def nearest_palette_color(
    color: Sequence[float],
    palette: Sequence[Sequence[float]],
) -> Tuple[float, float, float]:
    """Return the palette entry closest to `color` in squared RGB distance.

    Raises
    ------
    ValueError
        If palette is empty
    """
    if len(palette) == 0:
        raise ValueError("Palette is empty; specified palette mode needs at least one color")
    entries = np.asarray(palette, dtype=np.float64).reshape(-1, 3)
    d = entries - np.asarray(color, dtype=np.float64)[:3]
    idx = int(np.argmin(rgb_distance_sq(d[:, 0], d[:, 1], d[:, 2])))
    r, g, b = entries[idx]
    return float(r), float(g), float(b)
