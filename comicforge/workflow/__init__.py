"""
Workflow Orchestration
======================

High-level orchestration for comic production.

Components:
- ComicStudio: Main entry point
- CharacterAssetManager: Character portrait sets
- PanelSequenceManager: Ordered panels of an episode
"""

from .characters import CharacterAssetManager
from .panels import PanelSequenceManager
from .studio import ComicStudio

__all__ = [
    "ComicStudio",
    "CharacterAssetManager",
    "PanelSequenceManager",
]
