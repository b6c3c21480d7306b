import numpy as np
import pytest
import torch

from config import GradientConfig
from nca import CellularAutomaton, CellNetwork, ConfigurationError, GradientTrainer, Grid, RuntimeStepError


def _trainer(grid, network, automaton, **overrides):
    return GradientTrainer(grid, network, automaton, GradientConfig(**overrides), verbose=False)


def test_loss_decreases_on_trivial_target(grid, network, automaton):
    target = np.zeros((5, 5), dtype=bool)
    trainer = _trainer(grid, network, automaton)

    before = trainer.evaluate(target)
    losses = trainer.train(target, num_iterations=50)
    after = trainer.evaluate(target)

    assert len(losses) == 50
    assert losses[0] == pytest.approx(before, rel=1e-5)
    assert after < before


def test_loss_checkpoints_every_n_steps_and_final(grid, network, automaton):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=10, loss_every_n_steps=4)
    seen = []
    inner = trainer.loss_fn

    def counting(target, x):
        seen.append(x)
        return inner(target, x)

    trainer.loss_fn = counting
    trainer.train_step(np.zeros((5, 5), dtype=bool))
    # Steps 4, 8 and the final step 10
    assert len(seen) == 3


def test_gradients_flow_through_whole_rollout(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=6, loss_every_n_steps=6)
    trainer.optimizer = trainer._create_optimizer()
    trainer.optimizer.zero_grad()
    trainer._rollout_loss(np.asarray(center_target)).backward()
    first_layer = list(network.brain.parameters())[0]
    assert first_layer.grad is not None
    assert torch.any(first_layer.grad != 0)


def test_train_step_updates_parameters_and_grid(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=5)
    before = network.get_parameters()
    trainer.train_step(center_target)
    after = network.get_parameters()
    assert any(not torch.equal(a, b) for a, b in zip(before, after))

    # Display pass: grid holds the discrete rollout of the updated network
    shown = grid.on.copy()
    grid.place_seed()
    automaton.run(5)
    np.testing.assert_array_equal(grid.on, shown)


@pytest.mark.parametrize('optimizer', ['adam', 'sgd', 'rmsprop'])
def test_every_optimizer_kind_steps(grid, network, automaton, center_target, optimizer):
    trainer = _trainer(grid, network, automaton, optimizer=optimizer, steps_per_iteration=4)
    losses = trainer.train(center_target, num_iterations=2)
    assert len(losses) == 2
    assert all(np.isfinite(losses))


def test_optimizer_state_persists_until_reset(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=4)
    trainer.train(center_target, num_iterations=1)
    optimizer = trainer.optimizer
    trainer.train(center_target, num_iterations=1)
    assert trainer.optimizer is optimizer
    assert len(trainer.get_loss_history()) == 2

    trainer.set_learning_rate(1e-2)
    assert trainer.optimizer is None
    trainer.train(center_target, num_iterations=1)
    assert trainer.optimizer is not optimizer
    assert trainer.optimizer.param_groups[0]['lr'] == 1e-2

    trainer.clear_loss_history()
    assert trainer.get_loss_history() == []


def test_callback_false_stops(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=4)
    losses = trainer.train(center_target, num_iterations=10,
                           progress_callback=lambda i, loss: i < 3)
    assert len(losses) == 3
    assert not trainer.is_training


def test_step_error_aborts_training(grid, network, automaton, center_target, monkeypatch):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=4)

    def explode(x, parameters=None):
        raise RuntimeStepError("boom")

    monkeypatch.setattr(automaton, 'step_tensor', explode)
    with pytest.raises(RuntimeStepError):
        trainer.train(center_target, num_iterations=3)
    assert not trainer.is_training
    assert trainer.get_loss_history() == []


def test_non_differentiable_loss_rejected(grid, network, automaton):
    with pytest.raises(ConfigurationError):
        _trainer(grid, network, automaton, loss='mse')
    with pytest.raises(ConfigurationError):
        _trainer(grid, network, automaton, optimizer='adagrad')
    with pytest.raises(ConfigurationError):
        _trainer(grid, network, automaton, steps_per_iteration=0)


def test_evaluate_leaves_displayed_grid_untouched(grid, network, automaton, center_target):
    rng = np.random.default_rng(5)
    grid.commit(rng.random((grid.height, grid.width)) > 0.5,
                rng.uniform(-1, 1, (grid.height, grid.width, grid.state_size)))
    shown = grid.copy()

    trainer = _trainer(grid, network, automaton, steps_per_iteration=4)
    trainer.evaluate(center_target)

    np.testing.assert_array_equal(grid.on, shown.on)
    np.testing.assert_array_equal(grid.states, shown.states)


def test_rollout_starts_from_single_seed(grid, network, automaton, center_target):
    trainer = _trainer(grid, network, automaton, steps_per_iteration=3)
    grid.commit(np.ones((grid.height, grid.width), dtype=bool), grid.states)
    dirty = trainer.evaluate(center_target)
    grid.place_seed()
    assert trainer.evaluate(center_target) == pytest.approx(dirty)


def test_runs_reproduce_from_network_seed(small_config, center_target):
    def run():
        net = CellNetwork(small_config).initialize()
        g = Grid.from_config(small_config)
        trainer = GradientTrainer(g, net, CellularAutomaton(g, net),
                                  GradientConfig(steps_per_iteration=4), verbose=False)
        return trainer.train(center_target, num_iterations=2)

    assert run() == run()


def test_gradient_config_has_no_seed():
    with pytest.raises(TypeError):
        GradientConfig(random_seed=1)
