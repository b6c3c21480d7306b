"""
One interactive session: the grid, network and automaton an external UI
renders, plus the trainers that update them.
"""

from typing import Callable, List, Optional

import numpy as np
import torch

from config.nca_config import NCAConfig as Config
from config.trainer_config import GeneticConfig, GradientConfig
from .automaton import CellularAutomaton
from .data import as_target
from .genetic import GeneticTrainer
from .grid import Grid
from .loss import extract_window, get_loss
from .model import CellNetwork
from .training import GradientTrainer


class Session:

    def __init__(self, config: Config = None, verbose: bool = True):
        if config is None:
            config = Config.small()
        self.config = config.validate()
        self.verbose = verbose

        self.grid = Grid.from_config(config)
        self.network = CellNetwork(config)
        self.network.initialize()
        self.automaton = CellularAutomaton(self.grid, self.network)
        self.trainer = None

        self.reset_to_seed()
        if verbose:
            print(f"Session ready: {config.width}x{config.height} {config.boundary} grid, "
                  f"network {self.network.summary()}")

    # ------------------------------------------------------------------
    # Grid
    # ------------------------------------------------------------------

    def reset_to_seed(self):
        self.automaton.stop()
        self.grid.place_seed()

    def run(self, steps: int, target=None) -> Optional[float]:
        """Run `steps` discrete updates; returns the MSE loss when a target is given."""
        self.automaton.run(steps)
        if target is not None:
            return self.loss(target)
        return None

    def loss(self, target, kind: str = 'mse') -> float:
        target = as_target(target, self.config.target_size)
        return get_loss(kind)(target, self.grid)

    def total_error(self, target) -> float:
        """Signed sum of (target - on) over the target window."""
        target = as_target(target, self.config.target_size)
        window = extract_window(self.grid, target.shape)
        return float(np.sum(target.astype(np.float32) - window.astype(np.float32)))

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def genetic_trainer(self, config: GeneticConfig = None) -> GeneticTrainer:
        self.trainer = GeneticTrainer(self.grid, self.network, self.automaton,
                                      config, verbose=self.verbose)
        return self.trainer

    def gradient_trainer(self, config: GradientConfig = None) -> GradientTrainer:
        self.trainer = GradientTrainer(self.grid, self.network, self.automaton,
                                       config, verbose=self.verbose)
        return self.trainer

    def train(self, target, rounds: int, progress_callback: Callable = None) -> List[float]:
        """Train with the most recently created trainer (genetic by default)."""
        self.automaton.stop()
        if self.trainer is None:
            self.genetic_trainer()
        return self.trainer.train(target, rounds, progress_callback=progress_callback)

    def stop(self):
        self.automaton.stop()
        if self.trainer is not None:
            self.trainer.stop_training()

    @property
    def is_training(self) -> bool:
        return self.trainer is not None and self.trainer.is_training

    @property
    def loss_history(self) -> List[float]:
        if self.trainer is None:
            return []
        return list(self.trainer.loss_history)

    def parameters(self) -> List[torch.Tensor]:
        return self.network.get_parameters()
