"""Stroke-based image approximation.

Modules:
    - stroke: Stroke / Point / Color model, bounds, ribbon rendering
    - difference: per-pixel difference map and importance sampling
    - candidates: fresh / perturb / connected / hatch candidate generation
    - cost: full-canvas and bounding-box cost over a background snapshot
    - refiner: finite-difference gradient refinement of one stroke
    - optimizer: BrushOptimizer session state machine
    - scheduler: FrameScheduler tick driver

Invariants:
    - Every committed stroke leaves the Total Difference no larger than before
    - A discarded stroke leaves the canvas bit-identical to its background
    - All randomness comes from one injected numpy Generator
"""

from .candidates import CandidateGenerator, StrokeStrategy
from .cost import CostEvaluator
from .difference import DifferenceMap, TargetPixel
from .optimizer import BrushOptimizer, SessionSetupError, SessionState
from .refiner import GradientRefiner, RefinementStep
from .scheduler import FrameScheduler
from .stroke import Color, Point, Stroke, StrokeBounds

__all__ = [
    'BrushOptimizer',
    'CandidateGenerator',
    'Color',
    'CostEvaluator',
    'DifferenceMap',
    'FrameScheduler',
    'GradientRefiner',
    'Point',
    'RefinementStep',
    'SessionSetupError',
    'SessionState',
    'Stroke',
    'StrokeBounds',
    'StrokeStrategy',
    'TargetPixel',
]
