"""
Utility functions for Neural Cellular Automata.
Contains the padding and neighbourhood gathering shared by the discrete
and differentiable update paths.
"""

import torch
import torch.nn.functional as F

from .errors import RuntimeStepError

# Offsets (dy, dx) in the order the network input is laid out
NEIGHBOR_OFFSETS = (
    (-1, 0),   # top
    (1, 0),    # bottom
    (0, -1),   # left
    (0, 1),    # right
    (0, 0),    # self
)


def pad_grid(x, boundary):
    """Pad a [H, W, C] grid tensor by one cell on every side."""
    y = x.permute(2, 0, 1)[None]
    if boundary == 'torus':
        y = F.pad(y, (1, 1, 1, 1), mode='circular')
    else:
        y = F.pad(y, (1, 1, 1, 1), mode='constant', value=0.0)
    return y[0].permute(1, 2, 0)


def gather_neighborhoods(x, boundary):
    """
    Build the network input for every cell of a [H, W, C] grid tensor.

    Returns a [H*W, 5*C] tensor in row-major cell order where each row is
    the concatenation of the top, bottom, left, right and self channel
    vectors. Slicing keeps the result differentiable with respect to x.
    """
    h, w, c = x.shape
    padded = pad_grid(x, boundary)
    parts = [padded[1 + dy:1 + dy + h, 1 + dx:1 + dx + w] for dy, dx in NEIGHBOR_OFFSETS]
    return torch.cat(parts, dim=-1).reshape(h * w, 5 * c)


def activate_outputs(raw):
    """Sigmoid on the on/off channel, tanh on the state channels."""
    return torch.cat([torch.sigmoid(raw[:, :1]), torch.tanh(raw[:, 1:])], dim=1)


def check_finite(x, what):
    if not torch.isfinite(x).all():
        raise RuntimeStepError(f"Non-finite values produced by {what}")
