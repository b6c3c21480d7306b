"""
Genetic algorithm over the cell network's weights.

Each individual owns an immutable snapshot of the network parameters.
Fitness is measured by growing the seed for a fixed number of steps with
that snapshot on a private scratch grid, so neither the shared grid nor the
shared network is touched while a generation is being scored. The best
snapshot is copied into the shared network when training ends.
"""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import torch
from tqdm import tqdm

from config.trainer_config import GeneticConfig
from .automaton import CellularAutomaton
from .data import as_target
from .errors import ConfigurationError, NotInitializedError
from .grid import Grid
from .loss import get_loss
from .model import CellNetwork

FITNESS_EPS = 1e-4


@dataclass
class Individual:
    parameters: Tuple[torch.Tensor, ...]
    fitness: Optional[float] = None
    loss: Optional[float] = None


def crossover(parent1: Sequence[torch.Tensor], parent2: Sequence[torch.Tensor],
              generator: torch.Generator = None) -> Tuple[torch.Tensor, ...]:
    """Uniform crossover: every weight element comes from either parent with equal odds."""
    if len(parent1) != len(parent2):
        raise ConfigurationError("Parents have a different number of parameter tensors")
    child = []
    for w1, w2 in zip(parent1, parent2):
        if w1.shape != w2.shape:
            raise ConfigurationError(f"Cannot cross shapes {tuple(w1.shape)} and {tuple(w2.shape)}")
        mask = torch.rand(w1.shape, generator=generator).to(w1.device) > 0.5
        child.append(torch.where(mask, w1, w2))
    return tuple(child)


def mutate(parameters: Sequence[torch.Tensor], rate: float, strength: float,
           generator: torch.Generator = None) -> Tuple[torch.Tensor, ...]:
    """Add N(0, strength) noise to each weight element with probability `rate`."""
    mutated = []
    for w in parameters:
        mask = (torch.rand(w.shape, generator=generator) < rate).to(w.device, w.dtype)
        noise = (torch.randn(w.shape, generator=generator) * strength).to(w.device, w.dtype)
        mutated.append(w + noise * mask)
    return tuple(mutated)


def perturb(parameters: Sequence[torch.Tensor], std: float,
            generator: torch.Generator = None) -> Tuple[torch.Tensor, ...]:
    """Add N(0, std) noise to every weight element."""
    return tuple(
        w + (torch.randn(w.shape, generator=generator) * std).to(w.device, w.dtype)
        for w in parameters
    )


class GeneticTrainer:
    """
    Evolves the shared network towards a target pattern.

    The grid and network passed in are the live, externally visible ones;
    the trainer reads their configuration, writes the best parameters into
    the network and replays the best candidate on the grid for display.
    """

    def __init__(self, grid: Grid, network: CellNetwork, automaton: CellularAutomaton,
                 config: GeneticConfig = None, verbose: bool = True):
        if grid is None or network is None or automaton is None:
            raise ConfigurationError("GeneticTrainer requires grid, network and automaton")

        if config is None:
            config = GeneticConfig()
        self.config = config.validate()

        self.grid = grid
        self.network = network
        self.automaton = automaton
        self.verbose = verbose
        self.loss_fn = get_loss(config.loss)

        self.generator = torch.Generator()
        if config.random_seed is not None:
            self.generator.manual_seed(config.random_seed)
        else:
            self.generator.seed()

        # Private copy of the grid used for every fitness evaluation
        self.scratch_grid = grid.copy()
        self.scratch_automaton = CellularAutomaton(self.scratch_grid, network)

        self.population: List[Individual] = []
        self.generation = 0
        self.is_training = False
        self.loss_history: List[float] = []

    def _initialize_population(self):
        base = tuple(self.network.get_parameters())
        self.population = [Individual(tuple(w.clone() for w in base))]
        for _ in range(1, self.config.population_size):
            self.population.append(
                Individual(perturb(base, self.config.initial_noise, self.generator))
            )

    def _evaluate(self, individual: Individual, target, steps: int):
        self.scratch_grid.place_seed()
        self.scratch_automaton.run(steps, individual.parameters)
        loss = self.loss_fn(target, self.scratch_grid)
        individual.loss = float(loss)
        individual.fitness = 1.0 / (individual.loss + FITNESS_EPS)

    def _next_generation(self) -> List[Individual]:
        cfg = self.config
        elites = [
            Individual(tuple(w.clone() for w in ind.parameters))
            for ind in self.population[:cfg.elite_count]
        ]

        parent1 = self.population[0].parameters
        parent2 = self.population[1].parameters
        children = []
        for _ in range(cfg.elite_count, cfg.population_size):
            child = crossover(parent1, parent2, self.generator)
            child = mutate(child, cfg.mutation_rate, cfg.mutation_strength, self.generator)
            children.append(Individual(child))

        return elites + children

    def _show_best(self, steps: int):
        """Install the best snapshot and replay it on the shared grid."""
        self.network.set_parameters(self.population[0].parameters)
        self.grid.place_seed()
        self.automaton.run(steps)

    def train(self, target, num_generations: int = 100, steps_per_evaluation: int = None,
              progress_callback: Callable[[int, float], Optional[bool]] = None) -> List[float]:
        """
        Evolve for `num_generations` generations.

        progress_callback(generation, best_loss) is invoked after every
        generation; returning False stops training before the next
        generation is built. Returns the best loss of every generation run.
        """
        if not self.network.is_initialized:
            raise NotInitializedError("Network not initialized. Call network.initialize() first.")
        target = as_target(target, self.network.config.target_size)
        if steps_per_evaluation is None:
            steps_per_evaluation = self.config.steps_per_evaluation

        cfg = self.config
        history = []
        self.generation = 0
        self.is_training = True

        if self.verbose:
            print(f"Initializing population of {cfg.population_size}...")

        try:
            self._initialize_population()
            iterator = tqdm(range(num_generations)) if self.verbose else range(num_generations)

            for gen in iterator:
                if not self.is_training:
                    break
                self.generation = gen + 1

                for individual in self.population:
                    self._evaluate(individual, target, steps_per_evaluation)

                self.population.sort(key=lambda ind: ind.fitness, reverse=True)
                best_loss = self.population[0].loss
                history.append(best_loss)
                self.loss_history.append(best_loss)

                if cfg.apply_best_each_generation:
                    self._show_best(steps_per_evaluation)

                if self.verbose and gen % cfg.log_interval == 0:
                    tqdm.write(f"Generation {self.generation}: Best loss = {best_loss:.6f}")

                if progress_callback is not None:
                    if progress_callback(self.generation, best_loss) is False:
                        self.is_training = False
                if not self.is_training:
                    break

                if gen < num_generations - 1:
                    self.population = self._next_generation()

                if cfg.yield_interval > 0:
                    time.sleep(cfg.yield_interval)

            if history:
                self._show_best(steps_per_evaluation)
        finally:
            self.is_training = False

        if self.verbose and history:
            print(f"Training complete! Best loss: {history[-1]:.6f}")
        return history

    def best_parameters(self) -> Optional[List[torch.Tensor]]:
        scored = [ind for ind in self.population if ind.fitness is not None]
        if not scored:
            return None
        best = max(scored, key=lambda ind: ind.fitness)
        return [w.clone() for w in best.parameters]

    def stop_training(self):
        self.is_training = False
