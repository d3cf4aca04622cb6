"""
Configuration System
====================

Centralized, validated configuration management with typed dataclasses.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Union
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class GenerationConfig:
    """Image generation settings."""

    provider: str = "gemini"
    model: str = "gemini-2.5-flash-image-preview"
    max_retries: int = 3
    retry_base_delay: float = 1.0  # seconds; delays are base * 2**(n-1)
    timeout: int = 120
    api_key_env: str = "GEMINI_API_KEY"

    VALID_PROVIDERS = {"gemini"}

    def __post_init__(self):
        # Values interpolated from the environment arrive as strings
        self.max_retries = int(self.max_retries)
        self.retry_base_delay = float(self.retry_base_delay)
        self.timeout = int(self.timeout)
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.provider not in self.VALID_PROVIDERS:
            raise ConfigurationError(
                f"Invalid provider: {self.provider}",
                config_key="generation.provider",
            )
        if not 1 <= self.max_retries <= 10:
            raise ConfigurationError(
                f"max_retries must be 1-10, got {self.max_retries}",
                config_key="generation.max_retries",
            )
        if self.retry_base_delay < 0:
            raise ConfigurationError(
                f"retry_base_delay must be >= 0, got {self.retry_base_delay}",
                config_key="generation.retry_base_delay",
            )
        if self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be positive, got {self.timeout}",
                config_key="generation.timeout",
            )


@dataclass
class NormalizationConfig:
    """Output normalization settings."""

    max_dimension: int = 1024
    quality: float = 0.8
    format: str = "JPEG"

    VALID_FORMATS = {"JPEG", "WEBP"}

    def __post_init__(self):
        self.max_dimension = int(self.max_dimension)
        self.quality = float(self.quality)
        self.format = self.format.upper()
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if self.max_dimension < 1:
            raise ConfigurationError(
                f"max_dimension must be >= 1, got {self.max_dimension}",
                config_key="normalization.max_dimension",
            )
        if not 0.0 < self.quality <= 1.0:
            raise ConfigurationError(
                f"quality must be in (0, 1], got {self.quality}",
                config_key="normalization.quality",
            )
        if self.format not in self.VALID_FORMATS:
            raise ConfigurationError(
                f"Invalid format: {self.format}",
                config_key="normalization.format",
            )


@dataclass
class ContinuityConfig:
    """Panel continuity settings."""

    continuity_panels: int = 2
    aspect_ratio: str = "16:9"

    def __post_init__(self):
        self.continuity_panels = int(self.continuity_panels)
        if self.continuity_panels < 0:
            raise ConfigurationError(
                f"continuity_panels must be >= 0, got {self.continuity_panels}",
                config_key="continuity.continuity_panels",
            )


@dataclass
class StorageConfig:
    """Document store settings."""

    db_path: str = "./output/comicforge.db"


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class Config:
    """
    Main configuration container with validation and loading.

    Provides:
    - Type-safe access to configuration values
    - Validation on load
    - Environment variable interpolation
    - Defaults for every value
    """

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    continuity: ContinuityConfig = field(default_factory=ContinuityConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    _raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load configuration from file with environment variable interpolation.

        Args:
            path: Path to a YAML config file

        Returns:
            Validated Config instance
        """
        search_paths = [
            Path("./config/defaults.yaml"),
            Path("./defaults.yaml"),
            Path.home() / ".comicforge" / "config.yaml",
        ]

        if path:
            search_paths.insert(0, Path(path))

        config_data = {}

        for search_path in search_paths:
            if search_path.exists():
                logger.info(f"Loading config from: {search_path}")
                try:
                    with open(search_path, "r") as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except yaml.YAMLError as e:
                    raise ConfigurationError(
                        f"Invalid YAML in config file: {e}",
                        config_key=str(search_path),
                    )
        else:
            logger.info("No config file found, using defaults")

        config_data = cls._interpolate_env_vars(config_data)

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary with validation."""
        try:
            return cls(
                generation=GenerationConfig(**data.get("generation", {})),
                normalization=NormalizationConfig(**data.get("normalization", {})),
                continuity=ContinuityConfig(**data.get("continuity", {})),
                storage=StorageConfig(**data.get("storage", {})),
                _raw=data,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @staticmethod
    def _interpolate_env_vars(data: Any) -> Any:
        """Recursively interpolate ${VAR} patterns with environment variables."""
        if isinstance(data, str):
            # Handle ${VAR} and ${VAR:-default} patterns
            pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

            def replace(match):
                var_name = match.group(1)
                default = match.group(2) or ""
                return os.environ.get(var_name, default)

            return re.sub(pattern, replace, data)
        elif isinstance(data, dict):
            return {k: Config._interpolate_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Config._interpolate_env_vars(item) for item in data]
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        result = {}
        for section in ["generation", "normalization", "continuity", "storage"]:
            result[section] = asdict(getattr(self, section))
        return result


# =============================================================================
# Convenience Functions
# =============================================================================


_global_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance (lazily loaded)."""
    global _global_config
    if _global_config is None:
        _global_config = Config.load()
    return _global_config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload on next access)."""
    global _global_config
    _global_config = None
