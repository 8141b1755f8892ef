"""Top-level Toolwright configuration."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from toolwright.core.config.learning import EffectivenessConfig, MiningConfig
from toolwright.core.config.propagation import PropagationConfig
from toolwright.core.errors import ConfigError

# Default location for the learning database
DEFAULT_DB_PATH = Path.home() / ".toolwright" / "learning.db"


class ToolwrightConfig(BaseModel):
    """Complete configuration for the learning core."""

    db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        description="SQLite database holding executions, patterns, and rules.",
    )
    mining: MiningConfig = Field(default_factory=MiningConfig)
    effectiveness: EffectivenessConfig = Field(default_factory=EffectivenessConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> ToolwrightConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigError: If the file cannot be read, parsed, or validated.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot load config {path}: {e}") from e
        return cls._validate(data or {}, source=str(path))

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> ToolwrightConfig:
        """Load configuration from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config YAML: {e}") from e
        return cls._validate(data or {}, source="<string>")

    @classmethod
    def _validate(cls, data: object, source: str) -> ToolwrightConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {source}: {e}") from e
