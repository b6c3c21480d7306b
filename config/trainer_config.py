"""
Hyperparameters for the two optimizers of the shared cell network.
"""

from dataclasses import dataclass
from typing import Optional

from .common import LOSSES, OPTIMIZERS


@dataclass
class GeneticConfig:
    population_size: int = 30
    mutation_rate: float = 0.15      # Probability that a single weight is perturbed
    mutation_strength: float = 0.02  # Std of the additive Gaussian mutation noise
    elite_count: int = 2
    initial_noise: float = 0.1       # Wider spread used only when seeding the population

    steps_per_evaluation: int = 50
    loss: str = 'mse'

    # Copy the generation's best into the live network after every generation
    apply_best_each_generation: bool = True
    yield_interval: float = 0.0
    random_seed: Optional[int] = None
    log_interval: int = 10

    def validate(self) -> 'GeneticConfig':
        from nca.errors import ConfigurationError

        if self.population_size < 2:
            raise ConfigurationError(f"population_size must be >= 2, got {self.population_size}")
        if not 0 <= self.elite_count <= self.population_size:
            raise ConfigurationError(
                f"elite_count must be in [0, {self.population_size}], got {self.elite_count}"
            )
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ConfigurationError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if self.mutation_strength < 0 or self.initial_noise < 0:
            raise ConfigurationError("Noise standard deviations must be non-negative")
        if self.steps_per_evaluation < 0:
            raise ConfigurationError("steps_per_evaluation must be non-negative")
        if self.loss not in LOSSES:
            raise ConfigurationError(f"Unknown loss '{self.loss}', expected one of {LOSSES}")
        return self


@dataclass
class GradientConfig:
    learning_rate: float = 2e-3
    optimizer: str = 'adam'
    momentum: float = 0.9            # Only used by 'sgd'

    steps_per_iteration: int = 32
    loss_every_n_steps: int = 4
    loss: str = 'bce'

    yield_interval: float = 0.0
    log_interval: int = 10

    def validate(self) -> 'GradientConfig':
        from nca.errors import ConfigurationError

        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.optimizer not in OPTIMIZERS:
            raise ConfigurationError(
                f"Unknown optimizer '{self.optimizer}', expected one of {OPTIMIZERS}"
            )
        if self.steps_per_iteration < 1:
            raise ConfigurationError("steps_per_iteration must be >= 1")
        if self.loss_every_n_steps < 1:
            raise ConfigurationError("loss_every_n_steps must be >= 1")
        if self.loss not in LOSSES:
            raise ConfigurationError(f"Unknown loss '{self.loss}', expected one of {LOSSES}")
        return self
