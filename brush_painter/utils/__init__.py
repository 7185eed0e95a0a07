"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Color difference metrics (color)
    - Quadratic Bézier geometry (geometry)
    - Config validation (validators)
    - YAML and image I/O (fs)
    - Unified logging (logging_config)
    - Session quality metrics (metrics)
    - Profiling (profiler)
    - Seeding (torch_utils)

No module in utils/ may import from upper layers (raster, optimization).

Convenience imports:
    from brush_painter.utils import color, fs, validators
    from brush_painter.utils.logging_config import setup_logging, get_logger
"""

from . import color
from . import fs
from . import geometry
from . import logging_config
from . import metrics
from . import profiler
from . import torch_utils
from . import validators

from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'fs',
    'geometry',
    'logging_config',
    'metrics',
    'profiler',
    'torch_utils',
    'validators',
    # Direct exports
    'setup_logging',
    'get_logger',
    'push_context',
]
