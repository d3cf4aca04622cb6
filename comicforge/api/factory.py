"""
Provider Factory
================

Factory for creating image generation provider instances.
"""

import logging
import os
from typing import Optional, List, Dict, Type

from .base import BaseImageProvider
from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Registry of available providers
_PROVIDERS: Dict[str, Type[BaseImageProvider]] = {}


def register_provider(name: str):
    """Decorator to register a provider class."""
    def decorator(cls: Type[BaseImageProvider]):
        _PROVIDERS[name.lower()] = cls
        return cls
    return decorator


def get_provider(
    name: str,
    api_key: Optional[str] = None,
    **kwargs,
) -> BaseImageProvider:
    """
    Get an image generation provider instance.

    Args:
        name: Provider name (e.g., 'gemini')
        api_key: Optional API key (otherwise read from environment)
        **kwargs: Additional provider arguments (model, timeout, max_retries, ...)

    Returns:
        Configured provider instance

    Raises:
        ConfigurationError: If provider name is not recognized
    """
    name_lower = name.lower()

    if name_lower not in _PROVIDERS:
        # Try to import the provider module
        if name_lower == "gemini":
            from .gemini import GeminiImageProvider  # noqa: F401
        else:
            raise ConfigurationError(
                f"Unknown provider: {name}",
                config_key="generation.provider",
            )

    provider_class = _PROVIDERS[name_lower]
    logger.debug(f"Creating provider {provider_class.__name__}")
    return provider_class(api_key=api_key, **kwargs)


def get_provider_from_config(config, **kwargs) -> BaseImageProvider:
    """
    Build the configured provider.

    Args:
        config: Config instance (its ``generation`` section is used)
        **kwargs: Overrides (e.g. ``client``, ``sleep``)

    Returns:
        Configured provider instance
    """
    gen = config.generation
    options = {
        "model": gen.model,
        "timeout": gen.timeout,
        "max_retries": gen.max_retries,
        "retry_base_delay": gen.retry_base_delay,
    }
    options.update(kwargs)
    api_key = options.pop("api_key", None) or os.getenv(gen.api_key_env)
    return get_provider(gen.provider, api_key=api_key, **options)


def list_providers() -> List[str]:
    """
    List all available provider names.

    Returns:
        List of provider names
    """
    from . import gemini  # noqa: F401

    return list(_PROVIDERS.keys())
