"""
Panel Sequence Manager
======================

Creates, edits and deletes the panels of an episode while keeping their
``order`` values contiguous from 0.
"""

import logging
from typing import Optional, List, Sequence

from ..api.base import BaseImageProvider, RetryCallback
from ..context.references import ReferenceContext, ReferenceContextBuilder
from ..context.store import DocumentStore
from ..core.exceptions import ValidationError
from ..series.models import SERIES, EPISODES, PANELS, Character, Episode, Panel, Series
from ..utils.image_utils import ImageBlob, ImageNormalizer
from .characters import CharacterAssetManager

logger = logging.getLogger(__name__)


class PanelSequenceManager:
    """
    Manages the ordered panels of each episode.

    Every panel is conditioned on the portraits of the characters present
    and on the panels that precede it, so consecutive panels stay visually
    continuous.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: BaseImageProvider,
        characters: CharacterAssetManager,
        normalizer: Optional[ImageNormalizer] = None,
        builder: Optional[ReferenceContextBuilder] = None,
        max_retries: Optional[int] = None,
    ):
        """
        Initialize the manager.

        Args:
            store: Document store
            provider: Image generation provider
            characters: Character manager used to resolve the cast
            normalizer: Output normalizer
            builder: Reference context builder
            max_retries: Attempts per panel (provider default when omitted)
        """
        self.store = store
        self.provider = provider
        self.characters = characters
        self.normalizer = normalizer or ImageNormalizer()
        self.builder = builder or ReferenceContextBuilder()
        self.max_retries = max_retries

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_panel(self, panel_id: str) -> Panel:
        doc = self.store.require(PANELS, panel_id)
        return Panel.from_dict(doc.id, doc.data)

    def list_panels(self, episode_id: str) -> List[Panel]:
        """Panels of an episode, by order."""
        docs = self.store.query(PANELS, where={"episode_id": episode_id}, order_by="order")
        return [Panel.from_dict(doc.id, doc.data) for doc in docs]

    def _get_episode(self, episode_id: str) -> Episode:
        doc = self.store.require(EPISODES, episode_id)
        return Episode.from_dict(doc.id, doc.data)

    def _get_series(self, series_id: str) -> Series:
        doc = self.store.require(SERIES, series_id)
        return Series.from_dict(doc.id, doc.data)

    def _resolve_cast(self, series_id: str, character_ids: Sequence[str]) -> List[Character]:
        """Selected characters, in the series' character order."""
        wanted = set(character_ids)
        cast = [c for c in self.characters.list_characters(series_id) if c.id in wanted]
        missing = wanted - {c.id for c in cast}
        if missing:
            raise ValidationError(
                f"Unknown characters for series {series_id}: {sorted(missing)}",
                field="character_ids",
                value=sorted(missing),
            )
        return cast

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_panel(
        self,
        episode_id: str,
        scene_description: str,
        dialogue: str = "",
        character_ids: Sequence[str] = (),
        on_retry: Optional[RetryCallback] = None,
    ) -> Panel:
        """
        Generate a panel and append it to the episode.

        Nothing is written if generation fails.

        Args:
            episode_id: Episode to append to
            scene_description: Scene text
            dialogue: Dialogue text
            character_ids: Characters present in the panel
            on_retry: Retry progress callback

        Returns:
            The new panel

        Raises:
            ExhaustedRetries: If every generation attempt failed
            DecodeFailure: If the generated image could not be decoded
        """
        self._check_scene(scene_description)
        episode = self._get_episode(episode_id)
        series = self._get_series(episode.series_id)
        cast = self._resolve_cast(series.id, character_ids)

        preceding = self.builder.preceding_for_new(self.list_panels(episode_id))
        context = self.builder.panel_context(
            series.style,
            scene_description,
            dialogue,
            characters=cast,
            preceding=preceding,
        )

        image = await self._render(context, on_retry)

        # Order is taken at commit time, after the generation await
        order = self.store.count(PANELS, where={"episode_id": episode_id})
        panel = Panel(
            episode_id=episode_id,
            order=order,
            scene_description=scene_description,
            dialogue=dialogue,
            character_ids=[c.id for c in cast],
            image=image,
        )
        self.store.set(PANELS, panel.id, panel.to_dict())

        logger.info(f"Created panel {panel.id} at position {order} of episode {episode_id}")
        return panel

    async def edit_panel(
        self,
        panel_id: str,
        scene_description: str,
        dialogue: str = "",
        character_ids: Sequence[str] = (),
        on_retry: Optional[RetryCallback] = None,
    ) -> Panel:
        """
        Regenerate a panel in place, keeping its position.

        Continuity comes from the panels that preceded it when the edit
        started; later changes to the episode do not affect this edit.

        Args:
            panel_id: Panel to edit
            scene_description: New scene text
            dialogue: New dialogue text
            character_ids: Characters present in the panel
            on_retry: Retry progress callback

        Returns:
            The updated panel
        """
        self._check_scene(scene_description)
        panel = self.get_panel(panel_id)
        episode = self._get_episode(panel.episode_id)
        series = self._get_series(episode.series_id)
        cast = self._resolve_cast(series.id, character_ids)

        snapshot = self.list_panels(episode.id)
        preceding = self.builder.preceding_for_edit(snapshot, panel_id)
        context = self.builder.panel_context(
            series.style,
            scene_description,
            dialogue,
            characters=cast,
            preceding=preceding,
        )

        image = await self._render(context, on_retry)

        panel.scene_description = scene_description
        panel.dialogue = dialogue
        panel.character_ids = [c.id for c in cast]
        panel.image = image
        self.store.update(PANELS, panel_id, {
            "scene_description": panel.scene_description,
            "dialogue": panel.dialogue,
            "character_ids": panel.character_ids,
            "image_url": image.to_data_uri(),
        })

        logger.info(f"Edited panel {panel_id}")
        return self.get_panel(panel_id)

    def delete_panel(self, panel_id: str) -> None:
        """
        Delete a panel and close the gap in one batch.

        Remaining panels keep their relative order; only those whose
        position changed are rewritten.
        """
        panel = self.get_panel(panel_id)
        remaining = [p for p in self.list_panels(panel.episode_id) if p.id != panel_id]

        batch = self.store.batch()
        batch.delete(PANELS, panel_id)
        for index, sibling in enumerate(remaining):
            if sibling.order != index:
                batch.update(PANELS, sibling.id, {"order": index})
        batch.commit(operation="delete_panel")

        logger.info(
            f"Deleted panel {panel_id}; episode {panel.episode_id} "
            f"now has {len(remaining)} panels"
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _render(
        self,
        context: ReferenceContext,
        on_retry: Optional[RetryCallback],
    ) -> ImageBlob:
        result = await self.provider.generate(
            context.prompt,
            context.references,
            max_retries=self.max_retries,
            on_retry=on_retry,
        )
        if result.is_failed():
            raise result.error
        return self.normalizer.normalize(result.image)

    @staticmethod
    def _check_scene(scene_description: str) -> None:
        if not scene_description or not scene_description.strip():
            raise ValidationError(
                "Scene description is required",
                field="scene_description",
            )
