"""
Scoring a grid against a target pattern.

The target is compared with the window of the grid centred on the grid's
own centre: offset = floor(grid_dim / 2) - floor(target_dim / 2) per axis.
Two strategies are provided and are not meant to be comparable in
magnitude:

- MSELoss: mean squared error on the binary on/off flags, used by the
  genetic trainer.
- BCECollapseLoss: binary cross-entropy on the on/off probabilities plus a
  penalty that pushes total activity towards half the target's pixel count.
  The penalty deliberately biases training away from the all-off grid,
  which otherwise scores well whenever most target pixels are off.
"""

from typing import Tuple, Union

import numpy as np
import torch
import torch.nn.functional as F

from .data import as_target
from .errors import ConfigurationError
from .grid import Grid

GridLike = Union[Grid, torch.Tensor]


def window_offset(grid_height: int, grid_width: int, target_shape: Tuple[int, int]) -> Tuple[int, int]:
    """(x, y) of the window's top-left corner; raises if it leaves the grid."""
    th, tw = target_shape
    ox = grid_width // 2 - tw // 2
    oy = grid_height // 2 - th // 2
    if ox < 0 or oy < 0 or ox + tw > grid_width or oy + th > grid_height:
        raise ConfigurationError(
            f"{th}x{tw} target does not fit centred in a {grid_height}x{grid_width} grid"
        )
    return ox, oy


def extract_window(grid: GridLike, target_shape: Tuple[int, int]):
    """
    On/off values of the centred window.

    Grid input gives a bool array; tensor input gives a slice of channel 0
    that keeps its gradient.
    """
    th, tw = target_shape
    if isinstance(grid, Grid):
        ox, oy = window_offset(grid.height, grid.width, target_shape)
        return grid.on[oy:oy + th, ox:ox + tw]
    ox, oy = window_offset(grid.shape[0], grid.shape[1], target_shape)
    return grid[oy:oy + th, ox:ox + tw, 0]


class LossStrategy:
    name = None

    def __call__(self, target, grid: GridLike):
        raise NotImplementedError


class MSELoss(LossStrategy):
    """Mean over the window of (target - on)^2 with on in {0, 1}."""

    name = 'mse'

    def __call__(self, target, grid: GridLike):
        target = as_target(target)
        window = extract_window(grid, target.shape)
        if isinstance(grid, Grid):
            actual = window.astype(np.float32)
            return float(np.mean((target.astype(np.float32) - actual) ** 2))

        actual = (window > 0.5).float()
        expected = torch.as_tensor(target, dtype=actual.dtype, device=actual.device)
        return torch.mean((expected - actual) ** 2)


class BCECollapseLoss(LossStrategy):
    """Binary cross-entropy plus the anti-collapse activity penalty."""

    name = 'bce'

    def __init__(self, eps: float = 1e-7, penalty_weight: float = 0.1, activity_fraction: float = 0.5):
        self.eps = eps
        self.penalty_weight = penalty_weight
        self.activity_fraction = activity_fraction

    def __call__(self, target, grid: GridLike):
        target = as_target(target)
        as_float = isinstance(grid, Grid)
        if as_float:
            grid = grid.to_tensor()

        probs = extract_window(grid, target.shape).clamp(self.eps, 1.0 - self.eps)
        expected = torch.as_tensor(target, dtype=probs.dtype, device=probs.device)

        bce = F.binary_cross_entropy(probs, expected)
        shortfall = self.activity_fraction * expected.sum() - probs.sum()
        loss = bce + F.relu(shortfall) * self.penalty_weight

        return float(loss.item()) if as_float else loss


LOSSES = {
    MSELoss.name: MSELoss,
    BCECollapseLoss.name: BCECollapseLoss,
}


def get_loss(name: str) -> LossStrategy:
    if name not in LOSSES:
        raise ConfigurationError(f"Unknown loss '{name}', expected one of {tuple(LOSSES)}")
    return LOSSES[name]()
