"""Test filesystem helpers.

Tests for brush_painter.utils.fs:
    - ensure_dir creates parents
    - Atomic text/bytes writes leave no temp files
    - YAML round-trip keeps key order
    - Image save/load round-trip

Run:
    pytest tests/test_fs.py -v
"""

import numpy as np
import pytest

from brush_painter.utils import fs


def test_ensure_dir(tmp_path):
    target = fs.ensure_dir(tmp_path / "a" / "b" / "c")
    assert target.is_dir()


def test_atomic_write_text(tmp_path):
    path = tmp_path / "out.txt"
    fs.atomic_write_text(path, "hello")
    fs.atomic_write_text(path, "world")
    assert path.read_text() == "world"
    assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]


def test_yaml_round_trip_keeps_order(tmp_path):
    path = tmp_path / "data.yaml"
    data = {"z": 1, "a": [1.5, 2.5], "m": {"k": "v"}}
    fs.atomic_yaml_dump(data, path)
    loaded = fs.load_yaml(path)
    assert loaded == data
    assert list(loaded) == ["z", "a", "m"]


def test_load_yaml_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "missing.yaml")


def test_image_round_trip_rgba(tmp_path):
    rng = np.random.default_rng(0)
    img = rng.integers(0, 256, size=(9, 11, 4), dtype=np.uint8)
    img[..., 3] = 255
    path = tmp_path / "img.png"
    fs.atomic_save_image(img, path)
    loaded = fs.load_image_rgba(path)
    np.testing.assert_array_equal(loaded, img)


def test_load_rgb_image_adds_alpha(tmp_path):
    img = np.zeros((4, 5, 3), dtype=np.uint8)
    img[..., 1] = 77
    path = tmp_path / "rgb.png"
    fs.atomic_save_image(img, path)
    loaded = fs.load_image_rgba(path)
    assert loaded.shape == (4, 5, 4)
    assert np.all(loaded[..., 1] == 77)
    assert np.all(loaded[..., 3] == 255)


def test_load_image_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.load_image_rgba(tmp_path / "none.png")
