"""
API Module
==========

Image generation providers with bounded retries.
"""

from .base import (
    BaseImageProvider,
    GenerationRequest,
    GenerationResult,
    GenerationStatus,
    RetryCallback,
)
from .factory import get_provider, get_provider_from_config, list_providers, register_provider
from .gemini import GeminiImageProvider

__all__ = [
    "BaseImageProvider",
    "GenerationRequest",
    "GenerationResult",
    "GenerationStatus",
    "RetryCallback",
    "GeminiImageProvider",
    "get_provider",
    "get_provider_from_config",
    "list_providers",
    "register_provider",
]
