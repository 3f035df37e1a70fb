"""
Configuration management for the astro-risk scoring core.
Loads YAML configs with validation.
"""

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field


class GeneratorConfig(BaseModel):
    """Configuration for synthetic training data generation."""

    num_samples: int = Field(10000, ge=1, description="Number of samples to generate")
    mode: str = Field("balanced", pattern="^(unbiased|balanced)$", description="Generation mode")
    seed: Optional[int] = Field(None, description="Random seed for reproducibility")
    test_fraction: float = Field(0.15, ge=0, lt=1, description="Held-out test fraction")

    class Config:
        """Pydantic config."""
        validate_assignment = True


class TrainingConfig(BaseModel):
    """Configuration for training the scoring network."""

    epochs: int = Field(150, ge=1, description="Maximum number of training epochs")
    batch_size: int = Field(32, ge=1, description="Training batch size")
    learning_rate: float = Field(1e-3, gt=0, description="Adam learning rate")
    validation_split: float = Field(0.2, ge=0, lt=1, description="Fraction held out for validation")
    early_stopping: bool = Field(True, description="Stop when validation loss plateaus")
    patience: int = Field(20, ge=1, description="Epochs without improvement before stopping")
    device: str = Field("cpu", description="Torch device")

    class Config:
        """Pydantic config."""
        validate_assignment = True


class RuntimeConfig(BaseModel):
    """Configuration for the predictor runtime."""

    artifact_dir: str = Field("models/asteroid-risk-model", description="Model artifact directory")
    store_path: str = Field("data/model_store.db", description="SQLite file for the local model store")
    store_key: str = Field("asteroid-risk-model", description="Key of the model in the local store")
    cache_ttl_seconds: float = Field(24 * 60 * 60, gt=0, description="Cached model time-to-live")
    retry_cooldown_seconds: float = Field(300.0, ge=0, description="Delay before retrying a failed load")
    bootstrap_samples: int = Field(5000, ge=1, description="Samples used when training on demand")
    bootstrap_epochs: int = Field(50, ge=1, description="Epochs used when training on demand")
    bootstrap_mode: str = Field("unbiased", pattern="^(unbiased|balanced)$", description="Bootstrap dataset mode")
    model_version: str = Field("1.0.0", description="Version tag written into artifacts")
    device: str = Field("cpu", description="Torch device for inference")

    class Config:
        """Pydantic config."""
        validate_assignment = True


class Config:
    """Main configuration manager."""

    def __init__(self, config_dir: Path = Path("config")):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory containing configuration files
        """
        self.config_dir = Path(config_dir)
        self.generator: Optional[GeneratorConfig] = None
        self.training: Optional[TrainingConfig] = None
        self.runtime: Optional[RuntimeConfig] = None

    def load_all(self):
        """Load all configuration files."""
        self.generator = self.load_config("generator.yaml", GeneratorConfig)
        self.training = self.load_config("training.yaml", TrainingConfig)
        self.runtime = self.load_config("runtime.yaml", RuntimeConfig)

    def load_config(self, filename: str, config_class: type[BaseModel]) -> BaseModel:
        """
        Load and validate a configuration file.

        Args:
            filename: Config file name
            config_class: Pydantic model class for validation

        Returns:
            Validated configuration object

        Example:
            >>> config = Config()
            >>> runtime = config.load_config("runtime.yaml", RuntimeConfig)
            >>> print(f"Model TTL: {runtime.cache_ttl_seconds}s")
        """
        filepath = self.config_dir / filename

        if not filepath.exists():
            # Return default configuration
            return config_class()

        with open(filepath, 'r') as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            return config_class()

        return config_class(**config_dict)

    def save_config(self, config: BaseModel, filename: str):
        """
        Save configuration to YAML file.

        Args:
            config: Configuration object to save
            filename: Output filename
        """
        filepath = self.config_dir / filename
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w') as f:
            yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)

    def create_default_configs(self):
        """Create default configuration files if they don't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        configs = [
            ("generator.yaml", GeneratorConfig()),
            ("training.yaml", TrainingConfig()),
            ("runtime.yaml", RuntimeConfig()),
        ]

        for filename, config in configs:
            filepath = self.config_dir / filename
            if not filepath.exists():
                self.save_config(config, filename)

    def as_dict(self) -> Dict[str, dict]:
        """Loaded configuration sections as plain dictionaries."""
        sections = {
            "generator": self.generator,
            "training": self.training,
            "runtime": self.runtime,
        }
        return {name: cfg.model_dump() for name, cfg in sections.items() if cfg is not None}
