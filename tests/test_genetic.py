import numpy as np
import pytest
import torch

from config import GeneticConfig
from nca import CellNetwork, ConfigurationError, GeneticTrainer, NotInitializedError, RuntimeStepError
from nca.genetic import crossover, mutate


def _trainer(grid, network, automaton, **overrides):
    params = dict(population_size=10, elite_count=1, steps_per_evaluation=20, random_seed=42)
    params.update(overrides)
    return GeneticTrainer(grid, network, automaton, GeneticConfig(**params), verbose=False)


def test_crossover_preserves_shapes(network):
    g = torch.Generator().manual_seed(0)
    p1 = network.get_parameters()
    p2 = [w + 1.0 for w in p1]
    child = crossover(p1, p2, g)
    assert [tuple(w.shape) for w in child] == network.parameter_shapes()
    for c, a, b in zip(child, p1, p2):
        assert torch.all((c == a) | (c == b))


def test_crossover_rejects_mismatched_shapes(network):
    p1 = network.get_parameters()
    p2 = list(p1)
    p2[0] = torch.zeros(3, 3)
    with pytest.raises(ConfigurationError):
        crossover(p1, p2)


def test_mutation_rate_controls_which_weights_move(network):
    g = torch.Generator().manual_seed(0)
    params = network.get_parameters()
    unchanged = mutate(params, rate=0.0, strength=1.0, generator=g)
    for a, b in zip(params, unchanged):
        assert torch.equal(a, b)

    moved = mutate(params, rate=1.0, strength=1.0, generator=g)
    assert all(not torch.equal(a, b) for a, b in zip(params, moved))


def test_end_to_end_center_pixel(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton)
    history = trainer.train(center_target, num_generations=5, steps_per_evaluation=20)

    assert len(history) == 5
    assert all(0.0 <= loss <= 1.0 for loss in history)
    # The elite carries the best individual forward unchanged
    assert all(b <= a for a, b in zip(history, history[1:]))
    assert not trainer.is_training
    assert trainer.loss_history == history


def test_best_individual_copied_into_network(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, apply_best_each_generation=False)
    history = trainer.train(center_target, num_generations=3)
    best = trainer.best_parameters()
    for a, b in zip(best, network.get_parameters()):
        assert torch.equal(a, b)

    # The shared grid shows the best candidate grown from the seed
    grid.place_seed()
    automaton.run(20)
    assert trainer.loss_fn(center_target, grid) == pytest.approx(history[-1])


def test_first_individual_clones_current_network(grid, network, automaton):
    trainer = _trainer(grid, network, automaton)
    trainer._initialize_population()
    base = network.get_parameters()
    assert len(trainer.population) == 10
    for a, b in zip(trainer.population[0].parameters, base):
        assert torch.equal(a, b)
    assert any(not torch.equal(a, b) for a, b in zip(trainer.population[1].parameters, base))


def test_callback_false_stops_early(grid, network, automaton, center_target):
    calls = []

    def callback(generation, loss):
        calls.append((generation, loss))
        return generation < 2

    trainer = _trainer(grid, network, automaton)
    history = trainer.train(center_target, num_generations=10, progress_callback=callback)
    assert len(history) == 2
    assert [c[0] for c in calls] == [1, 2]


def test_callback_returning_none_continues(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton)
    history = trainer.train(center_target, num_generations=3, progress_callback=lambda g, l: None)
    assert len(history) == 3


def test_evaluation_error_aborts_training(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton)
    before = network.get_parameters()

    def failing_loss(target, g):
        raise RuntimeStepError("numeric failure")

    trainer.loss_fn = failing_loss
    with pytest.raises(RuntimeStepError):
        trainer.train(center_target, num_generations=3)
    assert not trainer.is_training
    for a, b in zip(before, network.get_parameters()):
        assert torch.equal(a, b)


def test_evaluation_does_not_touch_shared_grid(grid, network, automaton, center_target):
    grid.set(0, 0, True)
    snapshot = grid.on.copy()
    trainer = _trainer(grid, network, automaton)
    trainer._initialize_population()
    for individual in trainer.population:
        trainer._evaluate(individual, center_target, 5)
    np.testing.assert_array_equal(grid.on, snapshot)


def test_target_size_must_match(grid, network, automaton):
    trainer = _trainer(grid, network, automaton)
    with pytest.raises(ConfigurationError):
        trainer.train(np.zeros((10, 10), dtype=bool), num_generations=1)


def test_requires_initialized_network(grid, small_config, automaton, center_target):
    trainer = GeneticTrainer(grid, CellNetwork(small_config), automaton, verbose=False)
    with pytest.raises(NotInitializedError):
        trainer.train(center_target, num_generations=1)


def test_config_validation(grid, network, automaton):
    with pytest.raises(ConfigurationError):
        _trainer(grid, network, automaton, population_size=1)
    with pytest.raises(ConfigurationError):
        _trainer(grid, network, automaton, elite_count=11)
    with pytest.raises(ConfigurationError):
        GeneticTrainer(None, network, automaton)
