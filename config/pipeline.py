"""
Unified configuration for a training run.

Bundles the substrate, genetic and gradient settings with the
output locations used by train_nca.py. Only hyperparameters are
stored here; trained weights are never written.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional
from pathlib import Path
import json

from .nca_config import NCAConfig
from .trainer_config import GeneticConfig, GradientConfig


@dataclass
class PipelineConfig:
    """
    Configuration for one command-line training run.
    All output paths are derived from output_base and run_name.
    """

    # ==================== SUBSTRATE ====================
    nca: NCAConfig = field(default_factory=NCAConfig.small)

    # ==================== TRAINERS ====================
    trainer: str = 'genetic'  # 'genetic' or 'gradient'
    genetic: GeneticConfig = field(default_factory=GeneticConfig)
    gradient: GradientConfig = field(default_factory=GradientConfig)
    n_rounds: int = 100       # Generations or iterations

    # ==================== TARGET ====================
    target_image: Optional[str] = None
    target_text: Optional[str] = None

    # ==================== OUTPUT ====================
    output_base: str = 'outputs'
    run_name: str = 'nca'
    animation_steps: int = 50
    animation_fps: int = 10

    @property
    def output_dir(self) -> Path:
        return Path(self.output_base) / self.trainer

    @property
    def loss_plot_path(self) -> Path:
        return self.output_dir / f'{self.run_name}_loss.png'

    @property
    def animation_path(self) -> Path:
        return self.output_dir / f'{self.run_name}_growth.gif'

    @property
    def config_path(self) -> Path:
        return self.output_dir / f'{self.run_name}_config.json'

    def create_output_dirs(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def validate(self) -> 'PipelineConfig':
        from nca.errors import ConfigurationError

        if self.trainer not in ('genetic', 'gradient'):
            raise ConfigurationError(f"Unknown trainer '{self.trainer}'")
        if self.n_rounds < 0:
            raise ConfigurationError("n_rounds must be non-negative")
        self.nca.validate()
        self.genetic.validate()
        self.gradient.validate()
        return self


def load_config(path: str = 'config/pipeline.json') -> PipelineConfig:
    """Load config from JSON file, with defaults for missing fields."""
    config_path = Path(path)
    if not config_path.exists():
        return PipelineConfig()

    with open(config_path, 'r') as f:
        data = json.load(f)

    if 'nca' in data:
        data['nca'] = NCAConfig(**data['nca'])
    if 'genetic' in data:
        data['genetic'] = GeneticConfig(**data['genetic'])
    if 'gradient' in data:
        data['gradient'] = GradientConfig(**data['gradient'])

    return PipelineConfig(**data)


def save_config(config: PipelineConfig, path: str = 'config/pipeline.json'):
    """Save config to JSON file."""
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = asdict(config)
    # Device is resolved per machine
    data['nca'].pop('device', None)

    with open(config_path, 'w') as f:
        json.dump(data, f, indent=2)

    print(f"Saved config to {config_path}")
