"""Test session quality metrics.

Tests for brush_painter.utils.metrics:
    - rgba_to_tensor layout and range
    - PSNR/SSIM/MAE on identical and different images
    - compute_all_metrics() keys and ordering (closer image scores better)

Run:
    pytest tests/test_metrics.py -v
"""

import numpy as np
import pytest
import torch

from brush_painter.utils import metrics


@pytest.fixture
def image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(24, 20, 4), dtype=np.uint8)


def test_rgba_to_tensor(image):
    t = metrics.rgba_to_tensor(image)
    assert t.shape == (3, 24, 20)
    assert t.dtype == torch.float32
    assert float(t.max()) <= 1.0 and float(t.min()) >= 0.0
    assert t[0, 3, 5] == pytest.approx(image[3, 5, 0] / 255.0)


def test_identical_images(image):
    m = metrics.compute_all_metrics(image, image.copy())
    assert m['mae'] == 0.0
    assert m['ssim'] == pytest.approx(1.0, abs=1e-5)
    assert m['psnr'] > 60.0


def test_closer_image_scores_better(image):
    near = np.clip(image.astype(int) + 5, 0, 255).astype(np.uint8)
    far = 255 - image
    m_near = metrics.compute_all_metrics(image, near)
    m_far = metrics.compute_all_metrics(image, far)
    assert m_near['psnr'] > m_far['psnr']
    assert m_near['ssim'] > m_far['ssim']
    assert m_near['mae'] < m_far['mae']


def test_psnr_known_value():
    a = torch.zeros(3, 4, 4)
    b = torch.full((3, 4, 4), 0.1)
    # MSE = 0.01 → 20 dB
    assert float(metrics.psnr(a, b)) == pytest.approx(20.0, abs=1e-3)
