"""
Target patterns and seeds for Neural Cellular Automata.
Handles target validation, loading from images or text, and seed creation.
"""

from typing import Optional, Sequence

import numpy as np
from PIL import Image
import torch

from config.nca_config import NCAConfig as Config
from .errors import ConfigurationError


def as_target(target, size: Optional[int] = None) -> np.ndarray:
    """
    Validate a target pattern and return it as a 2-D bool array.

    When `size` is given the pattern must be exactly size x size.
    """
    if target is None:
        raise ConfigurationError("Target pattern is required")
    try:
        arr = np.asarray(target)
    except Exception as e:
        raise ConfigurationError(f"Target pattern is not a matrix: {e}") from e

    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ConfigurationError(f"Target pattern must be a non-empty 2-D matrix, got shape {arr.shape}")
    if arr.dtype == object:
        raise ConfigurationError("Target pattern rows must all have the same length")
    if size is not None and arr.shape != (size, size):
        raise ConfigurationError(f"Target pattern must be {size}x{size}, got {arr.shape[0]}x{arr.shape[1]}")
    return arr.astype(bool)


def empty_target(size: int) -> np.ndarray:
    return np.zeros((size, size), dtype=bool)


def center_pixel_target(size: int) -> np.ndarray:
    """Target with only the centre pixel on."""
    target = empty_target(size)
    target[size // 2, size // 2] = True
    return target


def parse_target(text: str, on_chars: str = '#X1*') -> np.ndarray:
    """
    Parse rows of characters into a target, e.g.

        ..#..
        .###.
        ..#..
    """
    rows = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not rows:
        raise ConfigurationError("Target text is empty")
    width = len(rows[0])
    if any(len(row) != width for row in rows):
        raise ConfigurationError("All target rows must have the same length")
    return np.array([[ch in on_chars for ch in row] for row in rows], dtype=bool)


def load_target(path, size: int, threshold: float = 0.5) -> np.ndarray:
    """
    Load an image as a size x size target.

    A pixel is on when it is opaque and darker than `threshold`
    (black drawing on a white or transparent background).
    """
    img = Image.open(path).convert('RGBA').resize((size, size), Image.Resampling.NEAREST)
    data = np.array(img).astype(np.float32) / 255.0
    luminance = data[..., :3].mean(axis=-1)
    alpha = data[..., 3]
    return (alpha > threshold) & (luminance < threshold)


def create_seed(config: Config = None, positions: Sequence = None) -> torch.Tensor:
    """
    Create the initial [H, W, 1+K] grid tensor.

    Args:
        config: NCA configuration
        positions: Optional list of (x, y) tuples switched on.
                   If None, uses the single centre cell.
    """
    if config is None:
        config = Config()

    seed = torch.zeros(config.height, config.width, config.channels, device=config.device)

    if positions is None:
        cx, cy = config.center
        seed[cy, cx, 0] = 1.0
    else:
        for x, y in positions:
            if 0 <= x < config.width and 0 <= y < config.height:
                seed[int(y), int(x), 0] = 1.0

    return seed
