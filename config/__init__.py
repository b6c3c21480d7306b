"""
Configuration module.
"""

from .pipeline import PipelineConfig, load_config, save_config
from .nca_config import NCAConfig
from .trainer_config import GeneticConfig, GradientConfig
from .common import get_device

__all__ = [
    'PipelineConfig',
    'load_config',
    'save_config',
    'NCAConfig',
    'GeneticConfig',
    'GradientConfig',
    'get_device'
]
