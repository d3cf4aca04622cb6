"""
Character Asset Manager
=======================

Owns each character's portrait set: one portrait per fixed prompt
template, generated in parallel and replaced as a whole.

A character's images are only ever written by a single batch that
deletes the previous set, writes the new one and records the final
status, so readers never see a mix of old and new portraits.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, List, Dict, Iterable

from ..api.base import BaseImageProvider, RetryCallback
from ..context.references import ReferenceContext, ReferenceContextBuilder
from ..context.store import DocumentStore
from ..core.exceptions import ComicForgeError, DecodeFailure, ValidationError
from ..series.models import (
    PORTRAIT_SLOTS,
    SERIES,
    CHARACTERS,
    CHARACTER_IMAGES,
    Character,
    CharacterStatus,
    PortraitImage,
    Series,
)
from ..utils.image_utils import ImageBlob, ImageNormalizer

logger = logging.getLogger(__name__)


class CharacterAssetManager:
    """
    Creates, regenerates and deletes characters and their portraits.

    Lifecycle: ``uninitialized -> generating -> ready | degraded``;
    regeneration re-enters ``generating`` from ready or degraded.
    A degraded character (fewer portraits than templates) stays degraded
    until the caller regenerates it.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: BaseImageProvider,
        normalizer: Optional[ImageNormalizer] = None,
        builder: Optional[ReferenceContextBuilder] = None,
        max_retries: Optional[int] = None,
    ):
        """
        Initialize the manager.

        Args:
            store: Document store
            provider: Image generation provider
            normalizer: Output normalizer
            builder: Reference context builder
            max_retries: Attempts per portrait (provider default when omitted)
        """
        self.store = store
        self.provider = provider
        self.normalizer = normalizer or ImageNormalizer()
        self.builder = builder or ReferenceContextBuilder()
        self.max_retries = max_retries

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_character(self, character_id: str) -> Character:
        """Load a character with its portraits, in slot order."""
        doc = self.store.require(CHARACTERS, character_id)
        return Character.from_dict(doc.id, doc.data, images=self._load_images(character_id))

    def list_characters(self, series_id: str) -> List[Character]:
        """All characters of a series, in creation order."""
        docs = self.store.query(CHARACTERS, where={"series_id": series_id}, order_by="created_at")
        return [
            Character.from_dict(doc.id, doc.data, images=self._load_images(doc.id))
            for doc in docs
        ]

    def _load_images(self, character_id: str) -> List[PortraitImage]:
        docs = self.store.query(
            CHARACTER_IMAGES, where={"character_id": character_id}, order_by="slot"
        )
        return [PortraitImage.from_dict(doc.id, doc.data) for doc in docs]

    def _get_series(self, series_id: str) -> Series:
        doc = self.store.require(SERIES, series_id)
        return Series.from_dict(doc.id, doc.data)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_or_update(
        self,
        series_id: str,
        name: str,
        description: str,
        character_id: Optional[str] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> Character:
        """
        Create a character (or update an existing one) and generate its
        full portrait set.

        Metadata is saved before any generation starts, so the character
        exists even if every portrait fails.

        Args:
            series_id: Owning series
            name: Character name
            description: Free text driving the portrait prompts
            character_id: Existing character to update
            on_retry: Retry progress callback

        Returns:
            The character with its new portraits
        """
        if not name.strip():
            raise ValidationError("Character name is required", field="name")
        if not description.strip():
            raise ValidationError("Character description is required", field="description")

        series = self._get_series(series_id)

        if character_id:
            character = self.get_character(character_id)
            if character.series_id != series_id:
                raise ValidationError(
                    f"Character {character_id} belongs to another series",
                    field="series_id",
                    value=series_id,
                )
            character.name = name
            character.description = description
            character.status = CharacterStatus.GENERATING
            self.store.update(CHARACTERS, character.id, {
                "name": name,
                "description": description,
                "status": character.status.value,
            })
            logger.info(f"Updated character {character.id} ({name})")
        else:
            character = Character(
                series_id=series_id,
                name=name,
                description=description,
                status=CharacterStatus.GENERATING,
            )
            self.store.set(CHARACTERS, character.id, character.to_dict())
            logger.info(f"Created character {character.id} ({name})")

        contexts = self.builder.full_generation(series.style, description)
        try:
            generated = await self._generate_slots(contexts, on_retry)
            images = {slot: image for slot, image in generated.items() if image is not None}
            return self._replace_images(character, images, operation="create_or_update")
        except ComicForgeError as e:
            self._mark_interrupted(character, e)
            raise

    async def regenerate(
        self,
        character_id: str,
        selected_slots: Iterable[int] = (),
        guidance: str = "",
        keep_only_selected: bool = False,
        on_retry: Optional[RetryCallback] = None,
    ) -> Character:
        """
        Regenerate a character's portraits.

        With ``keep_only_selected`` the selected slots are kept verbatim and
        serve as references for the others; a slot whose regeneration fails
        keeps its previous image. Otherwise every slot is generated from
        scratch and the previous set is discarded.

        Args:
            character_id: Character to regenerate
            selected_slots: Slots marked keep/selected
            guidance: Optional free-text instructions
            keep_only_selected: Partial rather than full regeneration
            on_retry: Retry progress callback

        Returns:
            The character with its new portraits
        """
        character = self.get_character(character_id)
        series = self._get_series(character.series_id)

        plan = self.builder.plan_regeneration(
            character,
            series.style,
            selected_slots=selected_slots,
            guidance=guidance,
            keep_only_selected=keep_only_selected,
        )
        logger.info(
            f"Regenerating character {character.id}: "
            f"{'full' if plan.is_full else 'partial'}, slots {sorted(plan.contexts)}"
        )

        character.status = CharacterStatus.GENERATING
        self.store.update(CHARACTERS, character.id, {"status": character.status.value})

        try:
            generated = await self._generate_slots(plan.contexts, on_retry)

            images: Dict[int, ImageBlob] = dict(plan.kept)
            for slot in plan.contexts:
                image = generated.get(slot) or plan.fallbacks.get(slot)
                if image is not None:
                    images[slot] = image

            return self._replace_images(character, images, operation="regenerate")
        except ComicForgeError as e:
            self._mark_interrupted(character, e)
            raise

    def delete(self, character_id: str) -> None:
        """Delete a character and all of its portraits in one batch."""
        self.store.require(CHARACTERS, character_id)

        batch = self.store.batch()
        for doc in self.store.query(CHARACTER_IMAGES, where={"character_id": character_id}):
            batch.delete(CHARACTER_IMAGES, doc.id)
        batch.delete(CHARACTERS, character_id)
        batch.commit(operation="delete_character")

        logger.info(f"Deleted character {character_id}")

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def _generate_slots(
        self,
        contexts: Dict[int, ReferenceContext],
        on_retry: Optional[RetryCallback] = None,
    ) -> Dict[int, Optional[ImageBlob]]:
        """Generate every slot concurrently; failed slots map to ``None``."""
        slots = sorted(contexts)
        results = await asyncio.gather(
            *(self._generate_slot(slot, contexts[slot], on_retry) for slot in slots)
        )
        return dict(zip(slots, results))

    async def _generate_slot(
        self,
        slot: int,
        context: ReferenceContext,
        on_retry: Optional[RetryCallback],
    ) -> Optional[ImageBlob]:
        result = await self.provider.generate(
            context.prompt,
            context.references,
            max_retries=self.max_retries,
            on_retry=on_retry,
        )
        if result.is_failed():
            logger.warning(f"Portrait slot {slot} failed: {result.error_message}")
            return None

        try:
            return self.normalizer.normalize(result.image)
        except DecodeFailure as e:
            logger.warning(f"Portrait slot {slot} could not be decoded: {e}")
            return None

    def _replace_images(
        self,
        character: Character,
        images: Dict[int, ImageBlob],
        operation: str,
    ) -> Character:
        """Swap in a new portrait set and final status in one batch."""
        portraits = [PortraitImage(slot=slot, image=images[slot]) for slot in sorted(images)]
        status = self._status_for(len(portraits))
        updated_at = datetime.now()

        batch = self.store.batch()
        for doc in self.store.query(CHARACTER_IMAGES, where={"character_id": character.id}):
            batch.delete(CHARACTER_IMAGES, doc.id)
        for portrait in portraits:
            batch.set(CHARACTER_IMAGES, portrait.id, portrait.to_dict(character.id))
        batch.update(CHARACTERS, character.id, {
            "status": status.value,
            "images_updated_at": updated_at.isoformat(),
        })
        batch.commit(operation=operation)

        character.images = portraits
        character.status = status
        character.images_updated_at = updated_at

        if status == CharacterStatus.DEGRADED:
            logger.warning(
                f"Character {character.id} is degraded: "
                f"{len(portraits)}/{PORTRAIT_SLOTS} portraits"
            )
        else:
            logger.info(f"Character {character.id} ready with {len(portraits)} portraits")
        return character

    def _mark_interrupted(self, character: Character, error: ComicForgeError) -> None:
        """
        Settle a character whose run failed after its metadata was written.

        The previous portrait set is still in place, so the status is
        recomputed from it. ``error`` is flagged as a partial change.
        """
        error.nothing_changed = False
        status = self._status_for(len(character.images))
        try:
            self.store.update(CHARACTERS, character.id, {"status": status.value})
            character.status = status
        except ComicForgeError as e:
            logger.error(f"Could not reset status of character {character.id}: {e}")
        logger.error(
            f"Character {character.id} run failed after metadata was saved; "
            f"status is {character.status.value}: {error}"
        )

    @staticmethod
    def _status_for(portrait_count: int) -> CharacterStatus:
        if portrait_count == PORTRAIT_SLOTS:
            return CharacterStatus.READY
        return CharacterStatus.DEGRADED
