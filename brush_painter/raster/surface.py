"""CPU raster surface with a small Canvas-2D-style drawing API.

This is the drawing target the optimizer paints on. It is deterministic and
pure CPU, built on OpenCV polygon rasterisation and numpy compositing.

Architecture:
    - Path construction: move_to / line_to / quadratic_curve_to / arc / close_path
    - Curves and arcs are flattened to polylines at construction time
    - fill(): each subpath → anti-aliased coverage mask (cv2.fillPoly, sub-pixel
      shift) → union → source-over compositing at global_alpha
    - stroke(): cv2.polylines coverage, same compositing
    - Pixel access over arbitrary sub-rectangles (get/put_image_data)

Invariants:
    - Buffer is (H, W, 4) uint8 RGBA, row-major, owned by the surface
    - Pixel (i, j) covers the square [i, i+1) × [j, j+1); its center is (i+0.5, j+0.5)
    - Every fill composites exactly once; overlapping fills accumulate
    - fill_style channels are clamped to [0, 255], global_alpha to [0, 1] at draw time

Usage:
    surface = RasterSurface(64, 48, background=(255, 255, 255))
    surface.fill_style = (200, 100, 50)
    surface.global_alpha = 0.8
    surface.begin_path()
    surface.arc(32, 24, 10, 0, 2 * math.pi)
    surface.fill()
    patch = surface.get_image_data(20, 10, 24, 24)
"""

import math
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..utils.geometry import BBox, clip_bbox, quadratic_bezier_eval


class SurfaceError(RuntimeError):
    """Invalid surface operation (bad size, bad buffer)."""


class SurfaceReadbackError(SurfaceError):
    """Pixel readback requested an empty or out-of-bounds region."""


# Fixed-point bits for cv2 sub-pixel coordinates
_SHIFT = 4
_SCALE = float(1 << _SHIFT)

# Arc flattening: max chord length in px, segment count limits
_ARC_MAX_CHORD = 1.5
_ARC_MIN_SEGMENTS = 8
_ARC_MAX_SEGMENTS = 256

_CURVE_SEGMENTS = 16


class RasterSurface:
    """Mutable RGBA raster with path filling and sub-rectangle pixel access.

    Attributes
    ----------
    width, height : int
        Surface size in pixels
    fill_style : tuple of float
        Current RGB fill color, [0, 255]
    global_alpha : float
        Current opacity for fills and strokes, [0, 1]
    """

    def __init__(
        self,
        width: int,
        height: int,
        background: Optional[Sequence[float]] = None,
    ):
        width = int(width)
        height = int(height)
        if width <= 0 or height <= 0:
            raise SurfaceError(f"Surface size must be positive, got {width}x{height}")

        self.width = width
        self.height = height
        self._pixels = np.zeros((height, width, 4), dtype=np.uint8)

        self.fill_style: Tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.global_alpha: float = 1.0
        self._state_stack: List[Tuple[Tuple[float, float, float], float]] = []

        self._subpaths: List[List[Tuple[float, float]]] = []

        if background is not None:
            self.clear(background)

    @classmethod
    def from_array(cls, rgba: np.ndarray) -> "RasterSurface":
        """Create a surface holding a copy of an (H, W, 4) uint8 buffer."""
        rgba = np.asarray(rgba)
        if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
            raise SurfaceError(
                f"Expected (H, W, 4) uint8 buffer, got shape {rgba.shape} dtype {rgba.dtype}"
            )
        surface = cls(rgba.shape[1], rgba.shape[0])
        surface._pixels[...] = rgba
        return surface

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the whole buffer (copy with get_image_data to keep it)."""
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def save(self) -> None:
        """Push fill_style and global_alpha."""
        self._state_stack.append((self.fill_style, self.global_alpha))

    def restore(self) -> None:
        """Pop fill_style and global_alpha; no-op on an empty stack."""
        if self._state_stack:
            self.fill_style, self.global_alpha = self._state_stack.pop()

    def clear(self, color: Sequence[float]) -> None:
        """Fill the whole surface with an opaque color."""
        rgb = np.clip(np.asarray(color, dtype=np.float64)[:3], 0, 255)
        self._pixels[..., :3] = np.rint(rgb).astype(np.uint8)
        self._pixels[..., 3] = 255

    # ------------------------------------------------------------------
    # Path construction
    # ------------------------------------------------------------------

    def begin_path(self) -> None:
        self._subpaths = []

    def move_to(self, x: float, y: float) -> None:
        self._subpaths.append([(float(x), float(y))])

    def line_to(self, x: float, y: float) -> None:
        if not self._subpaths:
            self.move_to(x, y)
            return
        self._subpaths[-1].append((float(x), float(y)))

    def quadratic_curve_to(self, cpx: float, cpy: float, x: float, y: float) -> None:
        """Append a quadratic Bézier from the current point, flattened."""
        if not self._subpaths:
            self.move_to(cpx, cpy)
        start = self._subpaths[-1][-1]
        t = np.arange(1, _CURVE_SEGMENTS + 1, dtype=np.float64) / _CURVE_SEGMENTS
        pts = quadratic_bezier_eval(start, (cpx, cpy), (x, y), t)
        self._subpaths[-1].extend((float(px), float(py)) for px, py in pts)

    def arc(
        self,
        x: float,
        y: float,
        radius: float,
        start_angle: float,
        end_angle: float,
        counterclockwise: bool = False,
    ) -> None:
        """Append a circular arc, connected to the current subpath if any."""
        if radius < 0:
            raise SurfaceError(f"Arc radius must be non-negative, got {radius}")

        sweep = end_angle - start_angle
        if counterclockwise:
            sweep = -((-sweep) % (2 * math.pi) or (2 * math.pi if sweep else 0.0))
        elif sweep >= 2 * math.pi:
            sweep = 2 * math.pi
        else:
            sweep = sweep % (2 * math.pi)

        n = int(math.ceil(abs(sweep) * radius / _ARC_MAX_CHORD)) if radius > 0 else 1
        n = max(_ARC_MIN_SEGMENTS, min(_ARC_MAX_SEGMENTS, n))
        angles = start_angle + sweep * np.arange(n + 1, dtype=np.float64) / n
        pts = [(x + radius * math.cos(a), y + radius * math.sin(a)) for a in angles]

        if not self._subpaths:
            self._subpaths.append([])
        self._subpaths[-1].extend(pts)

    def close_path(self) -> None:
        """Close the current subpath; the next line_to starts from its first point."""
        if self._subpaths and self._subpaths[-1]:
            first = self._subpaths[-1][0]
            self._subpaths.append([first])

    # ------------------------------------------------------------------
    # Rasterisation
    # ------------------------------------------------------------------

    def _path_bbox(self, pad: float) -> BBox:
        pts = np.array([p for sp in self._subpaths for p in sp], dtype=np.float64)
        return clip_bbox(
            float(pts[:, 0].min()) - pad,
            float(pts[:, 1].min()) - pad,
            float(pts[:, 0].max()) + pad,
            float(pts[:, 1].max()) + pad,
            self.width,
            self.height,
        )

    def _to_fixed(self, subpath: List[Tuple[float, float]], bbox: BBox) -> np.ndarray:
        # Shift so pixel centers land on integer cv2 coordinates
        pts = np.asarray(subpath, dtype=np.float64) - (bbox.x + 0.5, bbox.y + 0.5)
        return np.rint(pts * _SCALE).astype(np.int32).reshape(-1, 1, 2)

    def fill(self) -> None:
        """Fill every subpath with fill_style at global_alpha (union of subpaths)."""
        subpaths = [sp for sp in self._subpaths if len(sp) >= 3]
        if not subpaths:
            return
        bbox = self._path_bbox(pad=1.0)
        if bbox.is_empty:
            return

        coverage = np.zeros((bbox.h, bbox.w), dtype=np.uint8)
        scratch = np.zeros_like(coverage)
        for sp in subpaths:
            scratch[...] = 0
            cv2.fillPoly(scratch, [self._to_fixed(sp, bbox)], 255, lineType=cv2.LINE_AA, shift=_SHIFT)
            np.maximum(coverage, scratch, out=coverage)

        self._composite(coverage, bbox)

    def stroke(self, line_width: float = 1.0) -> None:
        """Stroke every subpath outline with fill_style at global_alpha."""
        subpaths = [sp for sp in self._subpaths if len(sp) >= 2]
        if not subpaths:
            return
        bbox = self._path_bbox(pad=line_width / 2.0 + 1.0)
        if bbox.is_empty:
            return

        thickness = max(1, int(round(line_width)))
        coverage = np.zeros((bbox.h, bbox.w), dtype=np.uint8)
        cv2.polylines(
            coverage,
            [self._to_fixed(sp, bbox) for sp in subpaths],
            False,
            255,
            thickness=thickness,
            lineType=cv2.LINE_AA,
            shift=_SHIFT,
        )
        self._composite(coverage, bbox)

    def fill_rect(self, x: float, y: float, w: float, h: float) -> None:
        """Fill an axis-aligned rectangle (separate from the current path)."""
        saved = self._subpaths
        self._subpaths = [[(x, y), (x + w, y), (x + w, y + h), (x, y + h)]]
        try:
            self.fill()
        finally:
            self._subpaths = saved

    def _composite(self, coverage: np.ndarray, bbox: BBox) -> None:
        """Source-over blend fill_style into bbox using coverage * global_alpha."""
        alpha = float(np.clip(self.global_alpha, 0.0, 1.0))
        if alpha <= 0.0:
            return

        a = (coverage.astype(np.float32) / 255.0 * alpha)[..., np.newaxis]
        color = np.clip(np.asarray(self.fill_style, dtype=np.float32)[:3], 0.0, 255.0)

        region = self._pixels[bbox.y:bbox.y + bbox.h, bbox.x:bbox.x + bbox.w]
        dst = region.astype(np.float32)
        dst[..., :3] = dst[..., :3] * (1.0 - a) + color * a
        dst[..., 3:] = dst[..., 3:] * (1.0 - a) + 255.0 * a
        region[...] = np.rint(dst).astype(np.uint8)

    # ------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------

    def get_image_data(self, x: int = 0, y: int = 0, w: Optional[int] = None, h: Optional[int] = None) -> np.ndarray:
        """Copy out an (h, w, 4) region.

        Raises
        ------
        SurfaceReadbackError
            If the region is empty or not fully inside the surface
        """
        w = self.width - x if w is None else int(w)
        h = self.height - y if h is None else int(h)
        x, y = int(x), int(y)
        if w <= 0 or h <= 0 or x < 0 or y < 0 or x + w > self.width or y + h > self.height:
            raise SurfaceReadbackError(
                f"Readback region ({x}, {y}, {w}, {h}) outside {self.width}x{self.height} surface"
            )
        return self._pixels[y:y + h, x:x + w].copy()

    def put_image_data(self, data: np.ndarray, x: int = 0, y: int = 0) -> None:
        """Write an (h, w, 4) uint8 block at (x, y); parts outside the surface are clipped."""
        data = np.asarray(data)
        if data.ndim != 3 or data.shape[2] != 4 or data.dtype != np.uint8:
            raise SurfaceError(
                f"Expected (h, w, 4) uint8 block, got shape {data.shape} dtype {data.dtype}"
            )
        x, y = int(x), int(y)
        x0, y0 = max(x, 0), max(y, 0)
        x1 = min(x + data.shape[1], self.width)
        y1 = min(y + data.shape[0], self.height)
        if x1 <= x0 or y1 <= y0:
            return
        self._pixels[y0:y1, x0:x1] = data[y0 - y:y1 - y, x0 - x:x1 - x]
