"""Brush Painter: stochastic stroke-based image approximation.

Approximates a reference raster image by placing curved, variable-width,
semi-transparent brush strokes one at a time, each chosen from random
candidates and refined by finite-difference gradient descent.

Architecture layers (strict one-way dependency):
    scripts/ → brush_painter/optimization/ → brush_painter/raster/ → brush_painter/utils/

Key invariants:
    - Pixel buffers are (H, W, 4) uint8 RGBA, row-major
    - Stroke geometry in canvas pixels (top-left origin, +Y down)
    - Stroke colors in [0, 255]³, opacity in the configured alpha range
    - Strokes are applied sequentially; each depends on the canvas left by the previous one
"""

__version__ = "0.4.0"
