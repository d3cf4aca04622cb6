"""
Series Module
=============

Data models for series, characters, episodes and panels.
"""

from .models import (
    PORTRAIT_SLOTS,
    SERIES,
    CHARACTERS,
    CHARACTER_IMAGES,
    EPISODES,
    PANELS,
    Series,
    Character,
    CharacterStatus,
    PortraitImage,
    Episode,
    Panel,
    new_id,
)

__all__ = [
    "PORTRAIT_SLOTS",
    "SERIES",
    "CHARACTERS",
    "CHARACTER_IMAGES",
    "EPISODES",
    "PANELS",
    "Series",
    "Character",
    "CharacterStatus",
    "PortraitImage",
    "Episode",
    "Panel",
    "new_id",
]
