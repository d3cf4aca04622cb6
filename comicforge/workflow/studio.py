"""
Comic Studio
============

Main entry point: wires configuration, storage, the generation provider
and both managers together, and adds the series and episode operations
around them.
"""

import logging
from pathlib import Path
from typing import Optional, List, Iterable, Sequence, Union

from ..api.base import BaseImageProvider, RetryCallback
from ..api.factory import get_provider_from_config
from ..context.references import ReferenceContextBuilder
from ..context.store import DocumentStore, SQLiteDocumentStore
from ..core.config import Config
from ..core.exceptions import ValidationError
from ..series.models import SERIES, EPISODES, PANELS, Character, Episode, Panel, Series
from ..utils.image_utils import ImageNormalizer
from .characters import CharacterAssetManager
from .panels import PanelSequenceManager

logger = logging.getLogger(__name__)


class ComicStudio:
    """
    Main class for producing comic series.

    Handles:
    - Series and episode records
    - Character portraits (via CharacterAssetManager)
    - Panel sequences (via PanelSequenceManager)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        config_path: Optional[Union[str, Path]] = None,
        store: Optional[DocumentStore] = None,
        provider: Optional[BaseImageProvider] = None,
    ):
        """
        Initialize the studio.

        Args:
            config: Configuration (loaded from ``config_path`` when omitted)
            config_path: Path to a YAML configuration file
            store: Document store (SQLite at ``storage.db_path`` when omitted)
            provider: Generation provider (built from configuration when omitted)
        """
        self.config = config or Config.load(config_path)

        self.store = store or SQLiteDocumentStore(self.config.storage.db_path)
        self._owns_store = store is None
        self.provider = provider or get_provider_from_config(self.config)

        self.normalizer = ImageNormalizer.from_config(self.config.normalization)
        self.builder = ReferenceContextBuilder.from_config(self.config)
        max_retries = self.config.generation.max_retries

        self.characters = CharacterAssetManager(
            self.store,
            self.provider,
            normalizer=self.normalizer,
            builder=self.builder,
            max_retries=max_retries,
        )
        self.panels = PanelSequenceManager(
            self.store,
            self.provider,
            self.characters,
            normalizer=self.normalizer,
            builder=self.builder,
            max_retries=max_retries,
        )

        logger.info("ComicStudio initialized")
        logger.info(f"  Provider: {self.provider}")
        logger.info(f"  Max retries: {max_retries}")

    # -------------------------------------------------------------------------
    # Series
    # -------------------------------------------------------------------------

    def create_series(self, title: str, style: str, owner_id: Optional[str] = None) -> Series:
        if not title.strip():
            raise ValidationError("Series title is required", field="title")
        series = Series(title=title, style=style, owner_id=owner_id)
        self.store.set(SERIES, series.id, series.to_dict())
        logger.info(f"Created series {series.id} ({title})")
        return series

    def update_series_style(self, series_id: str, style: str) -> Series:
        """Change the style injected into every later prompt."""
        self.store.update(SERIES, series_id, {"style": style})
        logger.info(f"Updated style of series {series_id}")
        return self.get_series(series_id)

    def get_series(self, series_id: str) -> Series:
        doc = self.store.require(SERIES, series_id)
        return Series.from_dict(doc.id, doc.data)

    def list_series(self, owner_id: Optional[str] = None) -> List[Series]:
        where = {"owner_id": owner_id} if owner_id else None
        docs = self.store.query(SERIES, where=where, order_by="created_at")
        return [Series.from_dict(doc.id, doc.data) for doc in docs]

    # -------------------------------------------------------------------------
    # Episodes
    # -------------------------------------------------------------------------

    def create_episode(self, series_id: str, title: str) -> Episode:
        self.store.require(SERIES, series_id)
        if not title.strip():
            raise ValidationError("Episode title is required", field="title")
        episode = Episode(series_id=series_id, title=title)
        self.store.set(EPISODES, episode.id, episode.to_dict())
        logger.info(f"Created episode {episode.id} ({title}) in series {series_id}")
        return episode

    def get_episode(self, episode_id: str) -> Episode:
        doc = self.store.require(EPISODES, episode_id)
        return Episode.from_dict(doc.id, doc.data)

    def list_episodes(self, series_id: str) -> List[Episode]:
        docs = self.store.query(EPISODES, where={"series_id": series_id}, order_by="created_at")
        return [Episode.from_dict(doc.id, doc.data) for doc in docs]

    def delete_episode(self, episode_id: str) -> None:
        """Delete an episode and all of its panels in one batch."""
        self.store.require(EPISODES, episode_id)

        batch = self.store.batch()
        for doc in self.store.query(PANELS, where={"episode_id": episode_id}):
            batch.delete(PANELS, doc.id)
        batch.delete(EPISODES, episode_id)
        batch.commit(operation="delete_episode")

        logger.info(f"Deleted episode {episode_id} ({len(batch) - 1} panels)")

    # -------------------------------------------------------------------------
    # Characters
    # -------------------------------------------------------------------------

    async def create_character(
        self,
        series_id: str,
        name: str,
        description: str,
        on_retry: Optional[RetryCallback] = None,
    ) -> Character:
        return await self.characters.create_or_update(
            series_id, name, description, on_retry=on_retry
        )

    async def update_character(
        self,
        character_id: str,
        name: str,
        description: str,
        on_retry: Optional[RetryCallback] = None,
    ) -> Character:
        character = self.characters.get_character(character_id)
        return await self.characters.create_or_update(
            character.series_id,
            name,
            description,
            character_id=character_id,
            on_retry=on_retry,
        )

    async def regenerate_character(
        self,
        character_id: str,
        selected_slots: Iterable[int] = (),
        guidance: str = "",
        keep_only_selected: bool = False,
        on_retry: Optional[RetryCallback] = None,
    ) -> Character:
        return await self.characters.regenerate(
            character_id,
            selected_slots=selected_slots,
            guidance=guidance,
            keep_only_selected=keep_only_selected,
            on_retry=on_retry,
        )

    def delete_character(self, character_id: str) -> None:
        self.characters.delete(character_id)

    def get_character(self, character_id: str) -> Character:
        return self.characters.get_character(character_id)

    def list_characters(self, series_id: str) -> List[Character]:
        return self.characters.list_characters(series_id)

    # -------------------------------------------------------------------------
    # Panels
    # -------------------------------------------------------------------------

    async def create_panel(
        self,
        episode_id: str,
        scene_description: str,
        dialogue: str = "",
        character_ids: Sequence[str] = (),
        on_retry: Optional[RetryCallback] = None,
    ) -> Panel:
        return await self.panels.create_panel(
            episode_id, scene_description, dialogue, character_ids, on_retry=on_retry
        )

    async def edit_panel(
        self,
        panel_id: str,
        scene_description: str,
        dialogue: str = "",
        character_ids: Sequence[str] = (),
        on_retry: Optional[RetryCallback] = None,
    ) -> Panel:
        return await self.panels.edit_panel(
            panel_id, scene_description, dialogue, character_ids, on_retry=on_retry
        )

    def delete_panel(self, panel_id: str) -> None:
        self.panels.delete_panel(panel_id)

    def get_panel(self, panel_id: str) -> Panel:
        return self.panels.get_panel(panel_id)

    def list_panels(self, episode_id: str) -> List[Panel]:
        return self.panels.list_panels(episode_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the provider connection and the store if owned."""
        await self.provider.close()
        if self._owns_store and isinstance(self.store, SQLiteDocumentStore):
            self.store.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
