"""Finite-difference gradient refinement of a single stroke.

One refinement step:
    1. Bounding box = control-point extent + max radius + epsilon + margin,
       clipped to the canvas (empty box → step skipped)
    2. Base cost of the current stroke inside the box
    3. Forward-difference gradient for each of the 13 parameters: probe one
       parameter at a time (radii clamped in probes) and divide the cost
       change by the probe step
    4. Gradient descent update with per-group learning rates; the position
       rate is scaled by average radius / alpha
    5. Clamp every parameter into its bounds
    6. New cost inside the same box; the global cost estimate moves by the
       local change
    7. Surface left showing background + updated stroke

Probe steps:
    - position: epsilon * radius * position_step_factor (radius of that point)
    - radius, color: epsilon
    - alpha: alpha_epsilon

Convergence: steps >= max_steps, or |Δcost| < avg radius * convergence_factor
once more than min_steps steps were taken.
"""

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np

from ..utils.geometry import BBox
from ..utils.validators import RefinementConfig
from .cost import CostEvaluator
from .stroke import (
    COLOR_PARAMETERS,
    PARAMETER_NAMES,
    POSITION_PARAMETERS,
    RADIUS_PARAMETERS,
    Stroke,
    StrokeBounds,
)

logger = logging.getLogger(__name__)


@dataclass
class RefinementStep:
    """Outcome of one refinement step."""
    skipped: bool
    steps: int
    global_cost: float
    local_cost_before: float = 0.0
    local_cost_after: float = 0.0
    cost_change: float = 0.0
    converged: bool = False


class GradientRefiner:
    """Gradient descent on stroke parameters using bounded cost probes.

    Parameters
    ----------
    evaluator : CostEvaluator
        Cost oracle with the background already captured
    bounds : StrokeBounds
        Clamping limits
    config : RefinementConfig
        Learning rates, probe steps, margins and convergence constants
    """

    def __init__(self, evaluator: CostEvaluator, bounds: StrokeBounds, config: RefinementConfig):
        self.evaluator = evaluator
        self.bounds = bounds
        self.config = config

    def refinement_bbox(self, stroke: Stroke) -> BBox:
        return self.evaluator.local_bbox(stroke, margin=self.config.epsilon + self.config.bbox_margin)

    def probe_step(self, stroke: Stroke, name: str) -> float:
        if name in POSITION_PARAMETERS:
            radius = stroke.get_parameter(name.split('.')[0] + '.radius')
            return self.config.epsilon * radius * self.config.position_step_factor
        if name == 'alpha':
            return self.config.alpha_epsilon
        return self.config.epsilon

    def _probe_cost(self, stroke: Stroke, name: str, step: float, bbox: BBox) -> float:
        probe = stroke.with_parameter(name, stroke.get_parameter(name) + step)
        for p in probe.points:
            p.radius = self.bounds.clamp_radius(p.radius)
        return self.evaluator.evaluate(probe, bbox)

    def estimate_gradient(self, stroke: Stroke, bbox: BBox, base_cost: float) -> Dict[str, float]:
        """Forward-difference gradient of the bounded cost, keyed by parameter name."""
        grads = {}
        for name in PARAMETER_NAMES:
            step = self.probe_step(stroke, name)
            grads[name] = (self._probe_cost(stroke, name, step, bbox) - base_cost) / step
        return grads

    def learning_rate(self, stroke: Stroke, name: str) -> float:
        cfg = self.config
        if name in POSITION_PARAMETERS:
            return cfg.learning_rate * stroke.average_radius() / stroke.alpha
        if name in RADIUS_PARAMETERS:
            return cfg.radius_learning_rate
        if name in COLOR_PARAMETERS:
            return cfg.color_learning_rate
        return cfg.alpha_learning_rate

    def apply_gradient(self, stroke: Stroke, grads: Dict[str, float]) -> None:
        """Descend one step in place, then clamp."""
        # Rates come from the pre-update stroke
        rates = {name: self.learning_rate(stroke, name) for name in PARAMETER_NAMES}
        for name in PARAMETER_NAMES:
            stroke.set_parameter(name, stroke.get_parameter(name) - grads[name] * rates[name])
        stroke.clamp_(self.bounds)

    def has_converged(self, cost_change: float, avg_radius: float, steps: int) -> bool:
        cfg = self.config
        if steps >= cfg.max_steps:
            return True
        return abs(cost_change) < avg_radius * cfg.convergence_factor and steps > cfg.min_steps

    def step(self, stroke: Stroke, global_cost: float, steps: int) -> RefinementStep:
        """Run one refinement step on stroke (mutated in place).

        Parameters
        ----------
        stroke : Stroke
            Stroke under refinement
        global_cost : float
            Current full-canvas cost estimate with this stroke drawn
        steps : int
            Steps taken so far on this stroke

        Returns
        -------
        RefinementStep
            Updated cost estimate and step count; skipped=True when the
            bounding box is empty
        """
        bbox = self.refinement_bbox(stroke)
        if bbox.is_empty:
            logger.debug(f"Refinement skipped: empty bounding box {bbox}")
            return RefinementStep(skipped=True, steps=steps, global_cost=global_cost)

        base_cost = self.evaluator.evaluate(stroke, bbox)
        grads = self.estimate_gradient(stroke, bbox, base_cost)

        avg_radius = stroke.average_radius()
        self.apply_gradient(stroke, grads)

        new_cost = self.evaluator.evaluate(stroke, bbox)
        cost_change = base_cost - new_cost
        steps += 1

        if logger.isEnabledFor(logging.DEBUG):
            norm = float(np.linalg.norm(list(grads.values())))
            logger.debug(f"Step {steps}: local {base_cost:.0f} → {new_cost:.0f}, |grad|={norm:.3g}")

        return RefinementStep(
            skipped=False,
            steps=steps,
            global_cost=global_cost - cost_change,
            local_cost_before=base_cost,
            local_cost_after=new_cost,
            cost_change=cost_change,
            converged=self.has_converged(cost_change, avg_radius, steps),
        )
