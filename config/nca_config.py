"""
Configuration for the Neural Cellular Automaton substrate.

Grid size, boundary policy, state width and network widths live in one
value so Grid, CellNetwork and CellularAutomaton are always built from
mutually consistent numbers.
"""

from dataclasses import dataclass
from typing import Optional

from .common import BOUNDARIES, get_device


@dataclass
class NCAConfig:
    width: int = 9
    height: int = 9
    boundary: str = 'torus'   # 'torus' wraps, 'zero' pads with off cells
    state_size: int = 2       # K floats carried by every cell

    hidden_size_1: int = 16
    hidden_size_2: int = 16

    target_size: int = 5

    device: str = None
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.device is None:
            self.device = get_device()

    @classmethod
    def small(cls, **overrides) -> 'NCAConfig':
        """9x9 torus grid, K=2, 5x5 target."""
        params = dict(width=9, height=9, boundary='torus', state_size=2,
                      hidden_size_1=16, hidden_size_2=16, target_size=5)
        params.update(overrides)
        return cls(**params)

    @classmethod
    def large(cls, **overrides) -> 'NCAConfig':
        """100x100 zero-padded grid, K=5, 10x10 target."""
        params = dict(width=100, height=100, boundary='zero', state_size=5,
                      hidden_size_1=32, hidden_size_2=32, target_size=10)
        params.update(overrides)
        return cls(**params)

    @property
    def channels(self) -> int:
        return 1 + self.state_size

    @property
    def input_size(self) -> int:
        return 5 * self.channels

    @property
    def output_size(self) -> int:
        return self.channels

    @property
    def center(self):
        return self.width // 2, self.height // 2

    def window_offset(self):
        """(x, y) of the top-left corner of the centred target window."""
        return (self.width // 2 - self.target_size // 2,
                self.height // 2 - self.target_size // 2)

    def validate(self) -> 'NCAConfig':
        from nca.errors import ConfigurationError

        if self.width < 1 or self.height < 1:
            raise ConfigurationError(f"Grid must be at least 1x1, got {self.width}x{self.height}")
        if self.boundary not in BOUNDARIES:
            raise ConfigurationError(f"Unknown boundary '{self.boundary}', expected one of {BOUNDARIES}")
        if self.state_size < 1:
            raise ConfigurationError(f"state_size must be >= 1, got {self.state_size}")
        if self.hidden_size_1 < 1 or self.hidden_size_2 < 1:
            raise ConfigurationError("Hidden layer sizes must be >= 1")
        if self.target_size < 1:
            raise ConfigurationError(f"target_size must be >= 1, got {self.target_size}")

        ox, oy = self.window_offset()
        if (ox < 0 or oy < 0 or ox + self.target_size > self.width
                or oy + self.target_size > self.height):
            raise ConfigurationError(
                f"{self.target_size}x{self.target_size} target does not fit centred in a "
                f"{self.width}x{self.height} grid"
            )
        return self
