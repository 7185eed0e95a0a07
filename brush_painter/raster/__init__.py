"""CPU raster surface (drawing target and pixel readback).

Modules:
    - surface: RasterSurface, SurfaceError, SurfaceReadbackError

Invariants:
    - RGBA uint8, row-major, (H, W, 4)
    - Deterministic: identical draw calls produce identical pixels

Used by:
    - optimization.stroke: Stroke.draw() issues fills on a surface
    - optimization.cost: snapshot restore + bounded readback
    - scripts/paint.py: canvas creation and final save
"""

from .surface import RasterSurface, SurfaceError, SurfaceReadbackError

__all__ = ['RasterSurface', 'SurfaceError', 'SurfaceReadbackError']
