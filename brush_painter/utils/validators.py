"""YAML schema validation and config loading.

Provides centralized validation for painting-session configuration using pydantic:
    - Optimizer schema (optimizer.v1.yaml): brush ranges, palette, difference
      method, candidate search, hatching, refinement constants
    - Stroke log schema (strokes.v1.yaml): committed strokes written by the CLI

Only types and shapes are checked. Range consistency (e.g. a radius range
with min > max) is the caller's responsibility and is not validated.

Units:
    - Geometry: canvas pixels
    - Color: [0, 255] per channel
    - Alpha: [0, 1]

Usage:
    from brush_painter.utils import validators

    cfg = validators.load_optimizer_config("configs/optimizer.v1.yaml")
    cfg = validators.OptimizerConfigV1()          # all defaults
    cfg = cfg.model_copy(update={"n_candidates": 20})
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .color import ColorDifferenceMethod, ColorPaletteMode


RGB = Tuple[float, float, float]


# ============================================================================
# OPTIMIZER SCHEMA V1
# ============================================================================

class RefinementConfig(BaseModel):
    """Finite-difference gradient descent constants.

    The learning rates and convergence factor are hand-tuned defaults with
    no derivation behind them; treat them as tuning knobs.
    """
    model_config = ConfigDict(extra="forbid")

    learning_rate: float = Field(5e-8, description="Position learning rate (scaled by avg radius / alpha)")
    radius_learning_rate: float = Field(5e-7, description="Radius learning rate")
    color_learning_rate: float = Field(2e-6, description="Color channel learning rate")
    alpha_learning_rate: float = Field(5e-6, description="Opacity learning rate")
    epsilon: float = Field(1.0, description="Probe step for radius/color; position base step")
    alpha_epsilon: float = Field(0.01, description="Probe step for alpha")
    position_step_factor: float = Field(0.25, description="Position probe = epsilon * radius * factor")
    bbox_margin: float = Field(2.0, description="Extra pixels around the stroke extent for local cost")
    max_steps: int = Field(1000, description="Refinement step cap per stroke")
    convergence_factor: float = Field(30.0, description="Converged when |Δcost| < avg radius * factor")
    min_steps: int = Field(2, description="Convergence is only checked after this many steps")


class OptimizerConfigV1(BaseModel):
    """Painting session configuration (optimizer.v1.yaml schema)."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_version: str = Field("optimizer.v1", alias="schema", description="Schema version")

    iterations_per_frame: int = Field(1, description="Refinement steps per tick")
    brush_radius_range: Tuple[float, float] = Field((1.0, 400.0), description="Per-point radius [min, max] (px)")
    stroke_length_range: Tuple[float, float] = Field((2.0, 16.0), description="Stroke length in radii [min, max]")
    color_jitter: float = Field(9.0, description="Uniform jitter applied to sampled colors")
    alpha_range: Tuple[float, float] = Field((0.8, 1.0), description="Opacity [min, max]")

    palette_mode: ColorPaletteMode = Field(ColorPaletteMode.ANY)
    palette: List[RGB] = Field(default_factory=list, description="RGB entries for specified palette mode")
    color_difference_method: ColorDifferenceMethod = Field(ColorDifferenceMethod.RGB_DISTANCE)

    n_candidates: int = Field(100, ge=1, description="Candidates scored per new stroke")
    exploit_probability: float = Field(0.7, description="Chance to derive a candidate from the last stroke")
    perturb_probability: float = Field(0.5, description="Perturbation vs connected continuation split")

    hatch_probability: float = Field(0.1, description="Chance to start a hatch run after a committed stroke")
    hatch_run_range: Tuple[int, int] = Field((2, 4), description="Hatch strokes per run [min, max]")
    hatch_spacing: float = Field(1.0, description="Gap between parallel hatch strokes (px)")

    background_color: RGB = Field((255.0, 255.0, 255.0), description="Initial canvas fill")
    stop_threshold: float = Field(1e-3, description="Stop once Total Difference falls to this value")
    bezier_subdivisions: int = Field(20, description="Centerline samples per stroke")
    max_strokes: Optional[int] = Field(None, description="Stop after this many committed strokes")
    seed: Optional[int] = Field(None, description="RNG seed; None draws fresh entropy")

    refinement: RefinementConfig = Field(default_factory=RefinementConfig)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "optimizer.v1":
            raise ValueError(f"Expected schema 'optimizer.v1', got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_palette(self) -> 'OptimizerConfigV1':
        """Specified palette mode needs colors to pick from."""
        if self.palette_mode == ColorPaletteMode.SPECIFIED and not self.palette:
            raise ValueError("palette_mode 'specified' requires a non-empty 'palette' list")
        return self


# ============================================================================
# STROKE LOG SCHEMA V1
# ============================================================================

class PointV1(BaseModel):
    """Anchor point with local half-width (px)."""
    x: float
    y: float
    radius: float


class ColorRGB(BaseModel):
    """RGB color, [0, 255] per channel."""
    r: float = Field(..., ge=0.0, le=255.0)
    g: float = Field(..., ge=0.0, le=255.0)
    b: float = Field(..., ge=0.0, le=255.0)


class StrokeV1(BaseModel):
    """Committed stroke entry."""
    index: int = Field(..., ge=0)
    p0: PointV1
    p1: PointV1
    p2: PointV1
    color: ColorRGB
    alpha: float = Field(..., ge=0.0, le=1.0)


class StrokesFileV1(BaseModel):
    """Container for a session's committed strokes."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("strokes.v1", alias="schema")
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    strokes: List[StrokeV1] = Field(default_factory=list)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "strokes.v1":
            raise ValueError(f"Expected schema 'strokes.v1', got '{v}'")
        return v


# ============================================================================
# PUBLIC API
# ============================================================================

def load_optimizer_config(path: Union[str, Path]) -> OptimizerConfigV1:
    """Load and validate optimizer config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to optimizer.v1.yaml file

    Returns
    -------
    OptimizerConfigV1
        Validated optimizer configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (with actionable error message)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Optimizer config not found: {path}")

    data = fs.load_yaml(path) or {}
    try:
        return OptimizerConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Optimizer config validation failed at {path}: {e}") from e


def validate_strokes_file(path: Union[str, Path]) -> StrokesFileV1:
    """Load and validate a stroke log written by scripts/paint.py.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Strokes file not found: {path}")

    data = fs.load_yaml(path)
    try:
        return StrokesFileV1(**data)
    except Exception as e:
        raise ValueError(f"Strokes file validation failed at {path}: {e}") from e


def config_to_dict(cfg: Union[Dict, BaseModel]) -> Dict[str, Any]:
    """Flatten a config into dot-separated keys (for summaries and logs).

    Examples
    --------
    >>> config_to_dict(OptimizerConfigV1())['refinement.max_steps']
    1000
    """
    if isinstance(cfg, BaseModel):
        cfg = cfg.model_dump(mode="json", by_alias=True)

    flat: Dict[str, Any] = {}

    def _walk(prefix: str, node: Any) -> None:
        if isinstance(node, dict):
            for k, v in node.items():
                _walk(f"{prefix}.{k}" if prefix else str(k), v)
        else:
            flat[prefix] = node

    _walk("", cfg)
    return flat
