"""
Grid of cells for the Neural Cellular Automaton.

Each cell holds an on/off flag and a fixed-length float state vector.
Storage is two numpy arrays (flags [H, W], states [H, W, K]) so the whole
grid converts to and from a dense [H, W, 1+K] tensor in one operation.
"""

from dataclasses import dataclass
from typing import List

import numpy as np
import torch

from config.common import BOUNDARIES
from .errors import ConfigurationError
from .utils import gather_neighborhoods


@dataclass(eq=False)
class Cell:
    on: bool
    state: np.ndarray

    def __eq__(self, other):
        if not isinstance(other, Cell):
            return NotImplemented
        return self.on == other.on and np.array_equal(self.state, other.state)

    def __repr__(self):
        return f"Cell(on={self.on}, state={self.state.tolist()})"


class Grid:
    """
    Fixed-size 2-D grid of cells, mutated in place.

    Out-of-range reads follow the boundary policy: 'torus' wraps both
    coordinates, 'zero' returns a synthetic off cell with a zero state.
    Out-of-range writes are ignored.
    """

    def __init__(self, width: int = 9, height: int = 9, state_size: int = 2, boundary: str = 'torus'):
        if width < 1 or height < 1:
            raise ConfigurationError(f"Grid must be at least 1x1, got {width}x{height}")
        if state_size < 1:
            raise ConfigurationError(f"state_size must be >= 1, got {state_size}")
        if boundary not in BOUNDARIES:
            raise ConfigurationError(f"Unknown boundary '{boundary}', expected one of {BOUNDARIES}")

        self.width = width
        self.height = height
        self.state_size = state_size
        self.boundary = boundary

        self.on = np.zeros((height, width), dtype=bool)
        self.states = np.zeros((height, width, state_size), dtype=np.float32)

    @classmethod
    def from_config(cls, config) -> 'Grid':
        return cls(config.width, config.height, config.state_size, config.boundary)

    @property
    def channels(self) -> int:
        return 1 + self.state_size

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> Cell:
        if not self.in_bounds(x, y):
            if self.boundary == 'zero':
                return Cell(False, np.zeros(self.state_size, dtype=np.float32))
            x %= self.width
            y %= self.height
        return Cell(bool(self.on[y, x]), self.states[y, x].copy())

    def set(self, x: int, y: int, on: bool, state=None):
        if not self.in_bounds(x, y):
            return
        self.on[y, x] = bool(on)
        if state is not None and len(state) == self.state_size:
            self.states[y, x] = np.asarray(state, dtype=np.float32)

    def neighbors(self, x: int, y: int) -> List[Cell]:
        """The five cells feeding (x, y): top, bottom, left, right, self."""
        return [
            self.get(x, y - 1),
            self.get(x, y + 1),
            self.get(x - 1, y),
            self.get(x + 1, y),
            self.get(x, y),
        ]

    def neighbor_input(self, x: int, y: int) -> np.ndarray:
        """Flat [5 * (1+K)] network input for a single cell."""
        parts = []
        for cell in self.neighbors(x, y):
            parts.append(np.float32(1.0 if cell.on else 0.0))
            parts.extend(cell.state)
        return np.asarray(parts, dtype=np.float32)

    def neighbor_inputs(self, device=None) -> torch.Tensor:
        """Network inputs for every cell at once, [H*W, 5 * (1+K)] in row-major order."""
        return gather_neighborhoods(self.to_tensor(device), self.boundary)

    def clear(self):
        self.on[:] = False
        self.states[:] = 0.0

    def reset(self):
        self.clear()

    def place_seed(self):
        """Clear the grid and switch on the single centre cell with a zero state."""
        self.clear()
        self.set(self.width // 2, self.height // 2, True)

    def commit(self, on, states):
        """Overwrite every cell at once from [H, W] flags and [H, W, K] states."""
        on = np.asarray(on, dtype=bool)
        states = np.asarray(states, dtype=np.float32)
        if on.shape != self.on.shape or states.shape != self.states.shape:
            raise ConfigurationError(
                f"Cannot commit flags {on.shape} / states {states.shape} "
                f"into a {self.height}x{self.width}x{self.state_size} grid"
            )
        self.on[:] = on
        self.states[:] = states

    def to_tensor(self, device=None) -> torch.Tensor:
        """Dense [H, W, 1+K] float tensor; channel 0 is the on/off flag."""
        data = np.concatenate([self.on[..., None].astype(np.float32), self.states], axis=-1)
        return torch.from_numpy(data).to(device or 'cpu')

    def from_tensor(self, tensor: torch.Tensor):
        """Inverse of to_tensor; the on/off channel is thresholded at 0.5."""
        expected = (self.height, self.width, self.channels)
        if tuple(tensor.shape) != expected:
            raise ConfigurationError(f"Expected tensor of shape {expected}, got {tuple(tensor.shape)}")
        data = tensor.detach().cpu().float().numpy()
        self.commit(data[..., 0] > 0.5, data[..., 1:])

    def on_mask(self) -> np.ndarray:
        return self.on.copy()

    def get_state(self) -> List[List[Cell]]:
        """Deep copy of every cell, indexed [y][x]."""
        return [[self.get(x, y) for x in range(self.width)] for y in range(self.height)]

    def copy(self) -> 'Grid':
        other = Grid(self.width, self.height, self.state_size, self.boundary)
        other.commit(self.on, self.states)
        return other
