import numpy as np
import pytest
import torch

from config import NCAConfig
from nca import (CellNetwork, CellularAutomaton, ConfigurationError, Grid,
                 NotInitializedError, RuntimeStepError)


def _random_state(grid, seed=3):
    rng = np.random.default_rng(seed)
    grid.commit(rng.random((grid.height, grid.width)) > 0.6,
                rng.uniform(-1, 1, (grid.height, grid.width, grid.state_size)))


def test_update_is_synchronous(grid, network, automaton):
    _random_state(grid)
    snapshot = grid.copy()

    expected = {}
    # Visit cells in reverse order, always reading the pre-update snapshot
    for y in reversed(range(grid.height)):
        for x in reversed(range(grid.width)):
            expected[(x, y)] = network.predict(snapshot.neighbor_input(x, y))

    automaton.update()
    for (x, y), cell in expected.items():
        actual = grid.get(x, y)
        assert actual.on == cell.on
        np.testing.assert_allclose(actual.state, cell.state, atol=1e-6)


@pytest.mark.parametrize('boundary', ['torus', 'zero'])
def test_tensor_step_matches_discrete_update(boundary):
    config = NCAConfig.small(device='cpu', random_seed=1, boundary=boundary)
    grid = Grid.from_config(config)
    network = CellNetwork(config).initialize()
    ca = CellularAutomaton(grid, network)
    _random_state(grid, seed=11)

    y = ca.step_tensor(grid.to_tensor())
    ca.update()
    np.testing.assert_array_equal(grid.on, (y[..., 0] > 0.5).detach().numpy())
    np.testing.assert_allclose(grid.states, y[..., 1:].detach().numpy(), atol=1e-6)


def test_chained_tensor_steps_reach_every_step(grid, network, automaton):
    states = automaton.rollout_tensor(grid.to_tensor(), 6)
    assert len(states) == 6
    assert all(s.shape == (9, 9, 3) for s in states)
    states[-1][..., 0].sum().backward()
    assert all(p.grad is not None and torch.any(p.grad != 0) for p in network.brain.parameters())


def test_step_tensor_rejects_wrong_shape(automaton):
    with pytest.raises(ConfigurationError):
        automaton.step_tensor(torch.zeros(5, 5, 3))


def test_constructor_requires_collaborators(grid, network):
    with pytest.raises(ConfigurationError):
        CellularAutomaton(None, network)
    with pytest.raises(ConfigurationError):
        CellularAutomaton(grid, None)
    with pytest.raises(ConfigurationError):
        CellularAutomaton(Grid(9, 9, state_size=5), network)


def test_update_requires_initialized_network(grid, small_config):
    ca = CellularAutomaton(grid, CellNetwork(small_config))
    with pytest.raises(NotInitializedError):
        ca.update()


def test_start_stops_at_max_steps(automaton):
    completed = []
    steps = automaton.start(interval=0, max_steps=3, on_complete=lambda: completed.append(True))
    assert steps == 3
    assert completed == [True]
    assert not automaton.is_running


def test_continuous_runs_until_stopped(automaton):
    seen = []

    def on_step(step):
        seen.append(step)
        if step == 5:
            automaton.stop()

    completed = []
    steps = automaton.start(interval=0, max_steps=2, continuous=True,
                            on_step=on_step, on_complete=lambda: completed.append(True))
    assert steps == 5
    assert seen == [1, 2, 3, 4, 5]
    assert completed == []


def test_error_during_step_stops_loop(grid, network, automaton, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeStepError("boom")

    loop = automaton.create_run_loop(max_steps=10)
    assert automaton.is_running
    monkeypatch.setattr(automaton, 'update', explode)
    with pytest.raises(RuntimeStepError):
        loop.run_step()
    assert not loop.is_running
    assert not automaton.is_running
    assert loop.run_step() is False


def test_callback_error_stops_loop_and_allows_restart(grid, network, automaton):
    def explode(step):
        raise ValueError("callback failed")

    with pytest.raises(ValueError):
        automaton.start(interval=0, max_steps=3, on_step=explode)
    assert not automaton.is_running

    assert automaton.start(interval=0, max_steps=3) == 3
    assert not automaton.is_running


def test_on_complete_error_stops_loop(grid, network, automaton):
    def explode():
        raise ValueError("completion handler failed")

    loop = automaton.create_run_loop(max_steps=1, on_complete=explode)
    with pytest.raises(ValueError):
        loop.run_step()
    assert not automaton.is_running


def test_non_finite_outputs_raise_step_error(grid, network, automaton):
    bad = network.get_parameters()
    bad[-1][0] = float('nan')
    network.set_parameters(bad)
    with pytest.raises(RuntimeStepError):
        automaton.update()


def test_reset_clears_grid(grid, automaton):
    automaton.reset()
    assert not grid.on.any()
