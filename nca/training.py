"""
Training module for Neural Cellular Automata.
Handles gradient-based optimisation of the shared cell network.

Training Strategy:
- Grow the seed for steps_per_iteration differentiable steps
- Score the grid against the target every loss_every_n_steps steps
  (and at the final step) and average those scores
- Backpropagate through the whole rollout (no truncation: every
  intermediate grid tensor stays alive until backward() has run, so
  memory grows linearly with steps_per_iteration)
- Replay the updated network on the discrete grid for display
"""

import time
from typing import Callable, List, Optional

import torch
import torch.optim as optim
from tqdm import tqdm

from config.trainer_config import GradientConfig as Config
from .automaton import CellularAutomaton
from .data import as_target, create_seed
from .errors import ConfigurationError, NotInitializedError
from .grid import Grid
from .loss import get_loss
from .model import CellNetwork


class GradientTrainer:
    """
    Backpropagation-through-time trainer for the shared network.

    The optimizer (and its moment estimates) persists across train()
    calls until reset_optimizer() or set_learning_rate() is called.
    """

    def __init__(self, grid: Grid, network: CellNetwork, automaton: CellularAutomaton,
                 config: Config = None, verbose: bool = True):
        if grid is None or network is None or automaton is None:
            raise ConfigurationError("GradientTrainer requires grid, network and automaton")

        if config is None:
            config = Config()
        self.config = config.validate()
        if config.loss != 'bce':
            raise ConfigurationError(
                f"Gradient training needs a differentiable loss, '{config.loss}' is not"
            )

        self.grid = grid
        self.network = network
        self.automaton = automaton
        self.verbose = verbose
        self.loss_fn = get_loss(config.loss)

        self.optimizer = None
        self.is_training = False
        self.iteration = 0
        self.loss_history: List[float] = []

    def _create_optimizer(self):
        """Create fresh optimizer."""
        params = self.network.brain.parameters()
        lr = self.config.learning_rate
        if self.config.optimizer == 'adam':
            return optim.Adam(params, lr=lr)
        if self.config.optimizer == 'sgd':
            return optim.SGD(params, lr=lr, momentum=self.config.momentum)
        return optim.RMSprop(params, lr=lr)

    def reset_optimizer(self):
        self.optimizer = None

    def set_learning_rate(self, learning_rate: float):
        if learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {learning_rate}")
        self.config.learning_rate = learning_rate
        self.reset_optimizer()

    def _require_ready(self, target):
        if not self.network.is_initialized:
            raise NotInitializedError("Network not initialized. Call network.initialize() first.")
        return as_target(target, self.network.config.target_size)

    def _rollout_loss(self, target) -> torch.Tensor:
        """Average of the checkpoint losses over one differentiable rollout."""
        steps = self.config.steps_per_iteration
        every = self.config.loss_every_n_steps

        # Fresh seed tensor; the displayed grid is left alone
        x = create_seed(self.network.config)

        states = self.automaton.rollout_tensor(x, steps)
        losses = [
            self.loss_fn(target, states[step - 1])
            for step in range(1, steps + 1)
            if step % every == 0 or step == steps
        ]
        return torch.stack(losses).mean()

    def train_step(self, target) -> float:
        """
        One optimisation step. Returns the loss measured before the update.
        """
        target = self._require_ready(target)
        if self.optimizer is None:
            self.optimizer = self._create_optimizer()

        self.optimizer.zero_grad()
        loss = self._rollout_loss(target)
        loss.backward()
        self.optimizer.step()

        with torch.no_grad():
            self.grid.place_seed()
            self.automaton.run(self.config.steps_per_iteration)

        self.iteration += 1
        value = float(loss.item())
        self.loss_history.append(value)
        return value

    def train(self, target, num_iterations: int = 100,
              progress_callback: Callable[[int, float], Optional[bool]] = None) -> List[float]:
        """
        Run `num_iterations` optimisation steps.

        progress_callback(iteration, loss) is invoked after every iteration;
        returning False stops training. Returns this call's losses.
        """
        target = self._require_ready(target)
        cfg = self.config
        losses = []
        self.is_training = True

        if self.verbose:
            print(f"Gradient training: {self.network.summary()}, optimizer={cfg.optimizer}, "
                  f"lr={cfg.learning_rate}, steps={cfg.steps_per_iteration}")

        iterator = tqdm(range(num_iterations)) if self.verbose else range(num_iterations)
        current = 0
        try:
            for i in iterator:
                if not self.is_training:
                    break
                current = i

                loss = self.train_step(target)
                losses.append(loss)

                if self.verbose and i % cfg.log_interval == 0:
                    tqdm.write(f"Iteration {self.iteration}: Loss = {loss:.6f}")

                if progress_callback is not None:
                    if progress_callback(self.iteration, loss) is False:
                        self.is_training = False

                if cfg.yield_interval > 0:
                    time.sleep(cfg.yield_interval)
        except KeyboardInterrupt:
            print(f"\nInterrupted at iteration {current}.")
            raise
        finally:
            self.is_training = False

        return losses

    @torch.no_grad()
    def evaluate(self, target) -> float:
        """Rollout loss of the current network. Neither the network nor the grid changes."""
        target = self._require_ready(target)
        return float(self._rollout_loss(target).item())

    def stop_training(self):
        self.is_training = False

    def get_loss_history(self) -> List[float]:
        return list(self.loss_history)

    def clear_loss_history(self):
        self.loss_history = []
        self.iteration = 0
