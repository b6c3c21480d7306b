"""
Neural Cellular Automata Model.
Defines the CellNetwork that maps a cell's neighbourhood to its next state.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from config.nca_config import NCAConfig as Config
from .errors import ConfigurationError, NotInitializedError
from .grid import Cell
from .utils import activate_outputs, check_finite


def mlp(x, parameters):
    """Dense -> ReLU -> dense -> ReLU -> dense over an ordered parameter list."""
    w1, b1, w2, b2, w3, b3 = parameters
    h = F.relu(F.linear(x, w1, b1))
    h = F.relu(F.linear(h, w2, b2))
    return F.linear(h, w3, b3)


class CellNetwork(nn.Module):
    """
    Shared update rule applied identically to every cell.

    Input is the flattened neighbourhood [top, bottom, left, right, self],
    each contributing (on, state[0..K-1]). Output channel 0 is the on/off
    logit, channels 1..K are the new state before tanh.

    Every forward method accepts an optional parameter sequence, so a
    candidate weight set can be evaluated without touching the network's
    own parameters.
    """

    def __init__(self, config: Config = None):
        super().__init__()

        if config is None:
            config = Config()

        self.config = config
        self.state_size = config.state_size
        self.input_size = config.input_size
        self.output_size = config.output_size
        self.hidden_size_1 = config.hidden_size_1
        self.hidden_size_2 = config.hidden_size_2
        self.device = config.device

        self.brain = None

    @property
    def is_initialized(self) -> bool:
        return self.brain is not None

    def initialize(self, generator: Optional[torch.Generator] = None):
        """Build the layers. Weights are drawn from `generator` when given."""
        if self.is_initialized:
            return self

        self.brain = nn.Sequential(
            nn.Linear(self.input_size, self.hidden_size_1),
            nn.ReLU(),
            nn.Linear(self.hidden_size_1, self.hidden_size_2),
            nn.ReLU(),
            nn.Linear(self.hidden_size_2, self.output_size)
        )

        if generator is None and self.config.random_seed is not None:
            generator = torch.Generator().manual_seed(self.config.random_seed)
        if generator is not None:
            with torch.no_grad():
                for layer in self.brain:
                    if isinstance(layer, nn.Linear):
                        bound = 1.0 / math.sqrt(layer.in_features)
                        layer.weight.uniform_(-bound, bound, generator=generator)
                        layer.bias.uniform_(-bound, bound, generator=generator)

        self.brain.to(self.device)
        return self

    def _require_initialized(self):
        if not self.is_initialized:
            raise NotInitializedError("Network not initialized. Call initialize() first.")

    def _parameters_for(self, parameters):
        if parameters is None:
            return list(self.brain.parameters())
        return list(parameters)

    def forward(self, x, parameters: Optional[Sequence[torch.Tensor]] = None):
        """Raw outputs [N, 1+K] for inputs [N, 5*(1+K)]."""
        self._require_initialized()
        if x.shape[-1] != self.input_size:
            raise ConfigurationError(f"Expected {self.input_size} inputs per cell, got {x.shape[-1]}")
        return mlp(x.to(self.device), self._parameters_for(parameters))

    def forward_tensor(self, x, parameters: Optional[Sequence[torch.Tensor]] = None):
        """Activated outputs with the gradient path to the parameters kept."""
        return activate_outputs(self(x, parameters))

    @torch.no_grad()
    def predict_batch(self, inputs, parameters: Optional[Sequence[torch.Tensor]] = None):
        """
        Evaluate many neighbourhoods at once.

        Returns (on [N] bool array, state [N, K] float array).
        """
        self._require_initialized()
        if not torch.is_tensor(inputs):
            inputs = torch.as_tensor(np.asarray(inputs, dtype=np.float32))
        out = self.forward_tensor(inputs.float(), parameters)
        check_finite(out, "network forward pass")
        out = out.cpu().numpy()
        return out[:, 0] > 0.5, out[:, 1:]

    def predict(self, neighborhood, parameters: Optional[Sequence[torch.Tensor]] = None) -> Cell:
        """Evaluate a single flattened neighbourhood."""
        x = np.asarray(neighborhood, dtype=np.float32).reshape(1, -1)
        on, state = self.predict_batch(x, parameters)
        return Cell(bool(on[0]), state[0].copy())

    def get_parameters(self) -> List[torch.Tensor]:
        """Detached copies of [w1, b1, w2, b2, w3, b3]."""
        self._require_initialized()
        return [p.detach().clone() for p in self.brain.parameters()]

    def parameter_shapes(self) -> List[Tuple[int, ...]]:
        self._require_initialized()
        return [tuple(p.shape) for p in self.brain.parameters()]

    def set_parameters(self, parameters: Sequence[torch.Tensor]):
        """Replace all weights; the sequence must match parameter_shapes() exactly."""
        self._require_initialized()
        parameters = list(parameters)
        current = list(self.brain.parameters())
        if len(parameters) != len(current):
            raise ConfigurationError(
                f"Expected {len(current)} parameter tensors, got {len(parameters)}"
            )
        for i, (new, old) in enumerate(zip(parameters, current)):
            if tuple(new.shape) != tuple(old.shape):
                raise ConfigurationError(
                    f"Parameter {i} has shape {tuple(new.shape)}, expected {tuple(old.shape)}"
                )
        with torch.no_grad():
            for new, old in zip(parameters, current):
                old.copy_(new.to(old.device, old.dtype))

    def summary(self) -> str:
        if not self.is_initialized:
            return 'Network not initialized'
        return (f"{self.input_size} -> {self.hidden_size_1} -> "
                f"{self.hidden_size_2} -> {self.output_size}")

    def dispose(self):
        self.brain = None
