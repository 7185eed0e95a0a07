"""Seeding for reproducible painting sessions.

Provides:
    - seed_everything(): seed Python, numpy and torch RNGs together
    - make_rng(): numpy Generator for injection into the optimizer

The optimizer draws all randomness from an injected numpy Generator, so a
fixed seed reproduces a session stroke for stroke.
"""

import os
import random
from typing import Optional

import numpy as np
import torch


def seed_everything(seed: int) -> None:
    """Seed Python, numpy and torch global RNGs.

    Also pins PYTHONHASHSEED for any subprocesses started afterwards.
    """
    os.environ["PYTHONHASHSEED"] = str(seed)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create a numpy Generator; fresh OS entropy when seed is None."""
    return np.random.default_rng(seed)
