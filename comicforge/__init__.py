"""
comicforge
==========

Generation orchestration and consistency engine for serialized comics
built from AI-generated images.

Features:
- Gemini image generation with bounded retries and exponential backoff
- Character portrait sets generated from fixed templates, with full or
  partial (selective) regeneration
- Panel continuity through character portraits and preceding panels
- Output normalization (bounded size, lossy re-encoding)
- Contiguous panel ordering kept by atomic batches

Quick Start:
    from comicforge import ComicStudio

    async with ComicStudio() as studio:
        series = studio.create_series("Night Shift", style="noir ink, heavy shadows")
        hero = await studio.create_character(
            series.id, "Mara", "a tired detective in a long grey coat"
        )
        episode = studio.create_episode(series.id, "Pilot")
        panel = await studio.create_panel(
            episode.id,
            "Mara steps out of a taxi into the rain",
            dialogue="Another long night.",
            character_ids=[hero.id],
        )
"""

__version__ = "0.1.0"

# Core Utilities
from .core.config import Config, get_config
from .core.exceptions import (
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

# Models
from .series.models import (
    Series,
    Character,
    CharacterStatus,
    Episode,
    Panel,
)
from .utils.image_utils import ImageBlob, ImageNormalizer

# Engine
from .api import get_provider, list_providers, GenerationResult, GenerationStatus
from .context import ReferenceContextBuilder, SQLiteDocumentStore
from .workflow import ComicStudio, CharacterAssetManager, PanelSequenceManager

__all__ = [
    # Version
    "__version__",

    # Core
    "Config",
    "get_config",

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

    # Models
    "Series",
    "Character",
    "CharacterStatus",
    "Episode",
    "Panel",
    "ImageBlob",
    "ImageNormalizer",

    # Engine
    "ComicStudio",
    "CharacterAssetManager",
    "PanelSequenceManager",
    "ReferenceContextBuilder",
    "SQLiteDocumentStore",
    "GenerationResult",
    "GenerationStatus",
    "get_provider",
    "list_providers",
]
