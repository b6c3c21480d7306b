"""
Neural Cellular Automata (NCA) - Learning to Grow

A grid of cells, each with an on/off flag and a small state vector,
updated synchronously by one shared network applied to every cell's
von Neumann neighbourhood. The network is trained to grow a target
pattern from a single seed cell, either by a genetic algorithm or by
backpropagation through time.
"""

from config.nca_config import NCAConfig as Config
from config.trainer_config import GeneticConfig, GradientConfig
from .errors import NCAError, ConfigurationError, NotInitializedError, RuntimeStepError
from .grid import Cell, Grid
from .model import CellNetwork
from .automaton import CellularAutomaton, RunLoop
from .loss import MSELoss, BCECollapseLoss, get_loss, extract_window
from .data import as_target, parse_target, load_target, create_seed, center_pixel_target
from .genetic import GeneticTrainer, Individual
from .training import GradientTrainer
from .session import Session
