"""
Series Models
=============

Core data models for series, characters, episodes and panels.

Each model converts to and from the plain dictionaries kept in the
document store; images are stored as base64 data URIs.
"""

import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from ..utils.image_utils import ImageBlob

logger = logging.getLogger(__name__)

# Number of portrait templates, and therefore portrait slots, per character
PORTRAIT_SLOTS = 3

# Document store collections
SERIES = "series"
CHARACTERS = "characters"
CHARACTER_IMAGES = "character_images"
EPISODES = "episodes"
PANELS = "panels"


def new_id() -> str:
    return uuid.uuid4().hex[:20]


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class CharacterStatus(Enum):
    """Lifecycle of a character's portrait set."""

    UNINITIALIZED = "uninitialized"
    GENERATING = "generating"
    READY = "ready"
    DEGRADED = "degraded"  # fewer than PORTRAIT_SLOTS images after exhausted retries


@dataclass
class Series:
    """A comic series; its style is injected into every prompt."""

    title: str
    style: str
    id: str = field(default_factory=new_id)
    owner_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "style": self.style,
            "owner_id": self.owner_id,
            "created_at": _format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, doc_id: str, data: Dict[str, Any]) -> "Series":
        return cls(
            id=doc_id,
            title=data.get("title", ""),
            style=data.get("style", ""),
            owner_id=data.get("owner_id"),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class PortraitImage:
    """One stored portrait, tagged with the template slot it was generated for."""

    slot: int
    image: ImageBlob
    id: str = field(default_factory=new_id)

    def to_dict(self, character_id: str) -> Dict[str, Any]:
        return {
            "character_id": character_id,
            "slot": self.slot,
            "image_url": self.image.to_data_uri(),
        }

    @classmethod
    def from_dict(cls, doc_id: str, data: Dict[str, Any]) -> "PortraitImage":
        return cls(
            id=doc_id,
            slot=int(data["slot"]),
            image=ImageBlob.from_data_uri(data["image_url"]),
        )


@dataclass
class Character:
    """
    A recurring character of a series.

    Characters are created with no images; portraits are filled in by the
    CharacterAssetManager and may end up fewer than PORTRAIT_SLOTS when
    generation attempts are exhausted.
    """

    series_id: str
    name: str
    description: str
    id: str = field(default_factory=new_id)
    status: CharacterStatus = CharacterStatus.UNINITIALIZED
    images: List[PortraitImage] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    images_updated_at: Optional[datetime] = None

    @property
    def image_blobs(self) -> List[ImageBlob]:
        """Stored portraits in slot order."""
        return [p.image for p in sorted(self.images, key=lambda p: p.slot)]

    def image_for_slot(self, slot: int) -> Optional[ImageBlob]:
        for portrait in self.images:
            if portrait.slot == slot:
                return portrait.image
        return None

    @property
    def is_degraded(self) -> bool:
        return len(self.images) < PORTRAIT_SLOTS

    def to_dict(self) -> Dict[str, Any]:
        """Metadata only; images live in their own collection."""
        return {
            "series_id": self.series_id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "created_at": _format_datetime(self.created_at),
            "images_updated_at": _format_datetime(self.images_updated_at),
        }

    @classmethod
    def from_dict(
        cls,
        doc_id: str,
        data: Dict[str, Any],
        images: Optional[List[PortraitImage]] = None,
    ) -> "Character":
        return cls(
            id=doc_id,
            series_id=data.get("series_id", ""),
            name=data.get("name", ""),
            description=data.get("description", ""),
            status=CharacterStatus(data.get("status", CharacterStatus.UNINITIALIZED.value)),
            images=sorted(images or [], key=lambda p: p.slot),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
            images_updated_at=_parse_datetime(data.get("images_updated_at")),
        )


@dataclass
class Episode:
    """An episode; its panels form an ordered sequence."""

    series_id: str
    title: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series_id": self.series_id,
            "title": self.title,
            "created_at": _format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, doc_id: str, data: Dict[str, Any]) -> "Episode":
        return cls(
            id=doc_id,
            series_id=data.get("series_id", ""),
            title=data.get("title", ""),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class Panel:
    """
    One generated image plus its scene metadata.

    ``order`` values of an episode's panels are always ``0..count-1``.
    """

    episode_id: str
    order: int
    scene_description: str
    image: ImageBlob
    dialogue: str = ""
    character_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "episode_id": self.episode_id,
            "order": self.order,
            "scene_description": self.scene_description,
            "dialogue": self.dialogue,
            "character_ids": list(self.character_ids),
            "image_url": self.image.to_data_uri(),
            "created_at": _format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, doc_id: str, data: Dict[str, Any]) -> "Panel":
        return cls(
            id=doc_id,
            episode_id=data.get("episode_id", ""),
            order=int(data.get("order", 0)),
            scene_description=data.get("scene_description", ""),
            dialogue=data.get("dialogue", ""),
            character_ids=list(data.get("character_ids") or []),
            image=ImageBlob.from_data_uri(data["image_url"]),
            created_at=_parse_datetime(data.get("created_at")) or datetime.now(),
        )
