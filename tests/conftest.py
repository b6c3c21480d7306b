import numpy as np
import pytest

from config import NCAConfig
from nca import CellularAutomaton, CellNetwork, Grid


@pytest.fixture
def small_config():
    return NCAConfig.small(device='cpu', random_seed=0)


@pytest.fixture
def network(small_config):
    return CellNetwork(small_config).initialize()


@pytest.fixture
def grid(small_config):
    g = Grid.from_config(small_config)
    g.place_seed()
    return g


@pytest.fixture
def automaton(grid, network):
    return CellularAutomaton(grid, network)


@pytest.fixture
def random_grid():
    rng = np.random.default_rng(7)
    g = Grid(6, 5, state_size=2, boundary='torus')
    g.commit(rng.random((5, 6)) > 0.5, rng.uniform(-1, 1, (5, 6, 2)))
    return g


@pytest.fixture
def center_target():
    t = np.zeros((5, 5), dtype=bool)
    t[2, 2] = True
    return t
