"""Test config and stroke-log schemas.

Tests for brush_painter.utils.validators:
    - OptimizerConfigV1 defaults
    - Schema tag, unknown keys, palette rules and empty candidate pools rejected
    - load_optimizer_config(): shipped config, missing file, bad content
    - StrokesFileV1 validation of a written stroke log
    - config_to_dict() flattening

Run:
    pytest tests/test_schemas.py -v
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from brush_painter.utils import fs, validators
from brush_painter.utils.color import ColorDifferenceMethod, ColorPaletteMode

CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "optimizer.v1.yaml"


def test_defaults():
    cfg = validators.OptimizerConfigV1()
    assert cfg.iterations_per_frame == 1
    assert cfg.brush_radius_range == (1.0, 400.0)
    assert cfg.stroke_length_range == (2.0, 16.0)
    assert cfg.color_jitter == 9.0
    assert cfg.alpha_range == (0.8, 1.0)
    assert cfg.palette_mode is ColorPaletteMode.ANY
    assert cfg.color_difference_method is ColorDifferenceMethod.RGB_DISTANCE
    assert cfg.n_candidates == 100
    assert cfg.stop_threshold == 1e-3
    assert cfg.refinement.learning_rate == 5e-8
    assert cfg.refinement.max_steps == 1000
    assert cfg.refinement.convergence_factor == 30.0


def test_wrong_schema_rejected():
    with pytest.raises(ValidationError, match="optimizer.v1"):
        validators.OptimizerConfigV1(schema="optimizer.v0")


def test_unknown_key_rejected():
    with pytest.raises(ValidationError):
        validators.OptimizerConfigV1(brush_size=3)


def test_specified_palette_requires_colors():
    with pytest.raises(ValidationError, match="palette"):
        validators.OptimizerConfigV1(palette_mode="specified")
    cfg = validators.OptimizerConfigV1(palette_mode="specified", palette=[(1, 2, 3)])
    assert cfg.palette == [(1.0, 2.0, 3.0)]


def test_candidate_count_must_be_positive():
    """Selection needs at least one candidate to keep."""
    with pytest.raises(ValidationError, match="n_candidates"):
        validators.OptimizerConfigV1(n_candidates=0)
    assert validators.OptimizerConfigV1(n_candidates=1).n_candidates == 1


def test_ranges_are_not_checked_for_order():
    """Only types are validated; reversed ranges pass through."""
    cfg = validators.OptimizerConfigV1(alpha_range=(1.0, 0.5))
    assert cfg.alpha_range == (1.0, 0.5)


def test_shipped_config_matches_defaults():
    cfg = validators.load_optimizer_config(CONFIG_PATH)
    assert cfg.model_dump() == validators.OptimizerConfigV1().model_dump()


def test_load_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        validators.load_optimizer_config(tmp_path / "nope.yaml")


def test_load_invalid_config(tmp_path):
    path = tmp_path / "bad.yaml"
    fs.atomic_yaml_dump({"schema": "optimizer.v1", "n_candidates": "many"}, path)
    with pytest.raises(ValueError, match="validation failed"):
        validators.load_optimizer_config(path)


def test_load_partial_config_fills_defaults(tmp_path):
    path = tmp_path / "partial.yaml"
    fs.atomic_yaml_dump({"n_candidates": 5, "refinement": {"max_steps": 10}}, path)
    cfg = validators.load_optimizer_config(path)
    assert cfg.n_candidates == 5
    assert cfg.refinement.max_steps == 10
    assert cfg.refinement.epsilon == 1.0


def test_strokes_file_validation(tmp_path):
    entry = {
        "index": 0,
        "p0": {"x": 1.0, "y": 2.0, "radius": 3.0},
        "p1": {"x": 4.0, "y": 5.0, "radius": 3.0},
        "p2": {"x": 7.0, "y": 8.0, "radius": 3.0},
        "color": {"r": 10.0, "g": 20.0, "b": 30.0},
        "alpha": 0.9,
    }
    path = tmp_path / "strokes.yaml"
    fs.atomic_yaml_dump({"schema": "strokes.v1", "width": 16, "height": 16, "strokes": [entry]}, path)
    log = validators.validate_strokes_file(path)
    assert log.width == 16
    assert log.strokes[0].color.g == 20.0

    entry["alpha"] = 1.5
    fs.atomic_yaml_dump({"schema": "strokes.v1", "width": 16, "height": 16, "strokes": [entry]}, path)
    with pytest.raises(ValueError):
        validators.validate_strokes_file(path)


def test_config_to_dict_flattens():
    flat = validators.config_to_dict(validators.OptimizerConfigV1())
    assert flat["refinement.max_steps"] == 1000
    assert flat["schema"] == "optimizer.v1"
    assert flat["color_difference_method"] == "rgb_distance"
