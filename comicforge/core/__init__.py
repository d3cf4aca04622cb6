"""
Core Module
===========

Configuration, exceptions and prompt hygiene shared by every component.
"""

from .config import (
    Config,
    GenerationConfig,
    NormalizationConfig,
    ContinuityConfig,
    StorageConfig,
    get_config,
    set_config,
    reset_config,
)
from .exceptions import (
    ComicForgeError,
    ConfigurationError,
    ValidationError,
    ResourceNotFoundError,
    ProviderError,
    TransientGenerationFailure,
    GenerationError,
    ExhaustedRetries,
    DecodeFailure,
    ConsistencyViolation,
)
from .security import sanitize_prompt, redact_api_key

__all__ = [
    # Configuration
    "Config",
    "GenerationConfig",
    "NormalizationConfig",
    "ContinuityConfig",
    "StorageConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "ComicForgeError",
    "ConfigurationError",
    "ValidationError",
    "ResourceNotFoundError",
    "ProviderError",
    "TransientGenerationFailure",
    "GenerationError",
    "ExhaustedRetries",
    "DecodeFailure",
    "ConsistencyViolation",
    # Security
    "sanitize_prompt",
    "redact_api_key",
]
