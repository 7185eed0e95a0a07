"""Image quality metrics for painting sessions.

Provides:
    - PSNR: Peak Signal-to-Noise Ratio
    - SSIM: Structural Similarity Index
    - MAE: Mean absolute error
    - compute_all_metrics(): one-call summary of canvas vs. reference

Used by:
    - BrushOptimizer.quality_report(): end-of-session summary
    - scripts/paint.py: summary.yaml

The optimizer itself never uses these; its cost is the color difference
metric in utils.color. These give a method-independent view of quality.

All metrics operate on torch tensors (3, H, W) or (B, 3, H, W) in [0, 1].
rgba_to_tensor() converts (H, W, 4) uint8 canvas buffers.
"""

import numpy as np
import torch
import torch.nn.functional as F


def rgba_to_tensor(buf: np.ndarray) -> torch.Tensor:
    """Convert an (H, W, 3|4) uint8 buffer to a (3, H, W) float32 tensor in [0, 1]."""
    rgb = np.ascontiguousarray(buf[..., :3])
    return torch.from_numpy(rgb).permute(2, 0, 1).to(torch.float32) / 255.0


def psnr(
    img1: torch.Tensor,
    img2: torch.Tensor,
    max_val: float = 1.0,
    eps: float = 1e-8
) -> torch.Tensor:
    """Compute Peak Signal-to-Noise Ratio in dB.

    PSNR = 10 * log10(max_val² / MSE). Identical images give a large finite
    value bounded by eps.
    """
    mse = F.mse_loss(img1, img2, reduction='mean')
    return 10.0 * torch.log10((max_val ** 2) / (mse + eps))


def _gaussian_window(window_size: int, sigma: float, channels: int, like: torch.Tensor) -> torch.Tensor:
    coords = torch.arange(window_size, dtype=torch.float32) - (window_size - 1) / 2.0
    gauss = torch.exp(-coords ** 2 / (2 * sigma ** 2))
    gauss = gauss / gauss.sum()
    kernel_2d = gauss.unsqueeze(0) * gauss.unsqueeze(1)
    kernel = kernel_2d.expand(channels, 1, window_size, window_size).contiguous()
    return kernel.to(device=like.device, dtype=like.dtype)


def ssim(
    img1: torch.Tensor,
    img2: torch.Tensor,
    window_size: int = 11,
    sigma: float = 1.5,
    k1: float = 0.01,
    k2: float = 0.03,
    max_val: float = 1.0
) -> torch.Tensor:
    """Compute Structural Similarity Index (Gaussian-windowed, per channel, averaged).

    Returns
    -------
    torch.Tensor
        Scalar in [-1, 1]; 1.0 for identical images

    References
    ----------
    Wang et al., "Image Quality Assessment: From Error Visibility to
    Structural Similarity", IEEE TIP 2004.
    """
    if img1.ndim == 3:
        img1 = img1.unsqueeze(0)
        img2 = img2.unsqueeze(0)

    channels = img1.shape[1]
    window = _gaussian_window(window_size, sigma, channels, img1)
    pad = window_size // 2

    c1 = (k1 * max_val) ** 2
    c2 = (k2 * max_val) ** 2

    mu1 = F.conv2d(img1, window, padding=pad, groups=channels)
    mu2 = F.conv2d(img2, window, padding=pad, groups=channels)
    mu1_sq = mu1 ** 2
    mu2_sq = mu2 ** 2
    mu1_mu2 = mu1 * mu2

    sigma1_sq = F.conv2d(img1 ** 2, window, padding=pad, groups=channels) - mu1_sq
    sigma2_sq = F.conv2d(img2 ** 2, window, padding=pad, groups=channels) - mu2_sq
    sigma12 = F.conv2d(img1 * img2, window, padding=pad, groups=channels) - mu1_mu2

    ssim_map = ((2 * mu1_mu2 + c1) * (2 * sigma12 + c2)) / (
        (mu1_sq + mu2_sq + c1) * (sigma1_sq + sigma2_sq + c2)
    )
    return ssim_map.mean()


def mean_absolute_error(img1: torch.Tensor, img2: torch.Tensor) -> torch.Tensor:
    """Mean absolute per-channel error."""
    return torch.abs(img1 - img2).mean()


def compute_all_metrics(reference: np.ndarray, canvas: np.ndarray) -> dict:
    """Compute the metric suite between two (H, W, 3|4) uint8 buffers.

    Returns
    -------
    dict
        {'psnr': dB, 'ssim': [-1, 1], 'mae': [0, 1]}
    """
    target = rgba_to_tensor(reference)
    current = rgba_to_tensor(canvas)
    with torch.no_grad():
        return {
            'psnr': float(psnr(target, current).item()),
            'ssim': float(ssim(target, current).item()),
            'mae': float(mean_absolute_error(target, current).item()),
        }
