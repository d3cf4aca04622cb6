"""
Reference Context Builder
=========================

Builds the prompt text and the ordered reference images that condition
each generation call.

Character portraits:
- cold start and full regeneration use the fixed templates alone
- partial regeneration passes the kept (selected) portraits as references
  and asks for consistency with them

Panels:
- references are every portrait of each present character (in the
  series' character order) followed by up to two preceding panels
- a panel with no characters says so explicitly in the prompt
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Sequence, Iterable

from ..core.exceptions import ValidationError
from ..core.security import sanitize_prompt
from ..series.models import PORTRAIT_SLOTS, Character, Panel
from ..utils.image_utils import ImageBlob

logger = logging.getLogger(__name__)


# =============================================================================
# Prompt Templates
# =============================================================================


# One template per portrait slot; slot i is always generated from template i
CHARACTER_TEMPLATES = (
    'Full body character concept art, clear background. Style: "{style}". '
    "Character: {description}, standing pose, neutral expression.",
    'Character portrait, shoulders up. Style: "{style}". '
    "Character: {description}, smiling.",
    'Character concept art, action pose. Style: "{style}". '
    "Character: {description}.",
)

CONSISTENCY_SUFFIX = (
    " Use these reference images to maintain consistency with the character's appearance."
)
GUIDANCE_SUFFIX = " Additional instructions: {guidance}"

PANEL_TEMPLATE = "\n".join([
    'Comic book panel in the style of: "{style}".',
    "Generate this image in {aspect_ratio} aspect ratio (widescreen format, horizontal layout).",
    "The composition should be optimized for {aspect_ratio} viewing with proper horizontal framing.",
    "{cast}",
    "Use the provided images as a strong reference for the characters' appearance "
    "and the scene's continuity from previous panels.",
    "Scene description: {scene}.",
    'Dialogue: "{dialogue}".',
    "The image should focus on the action and characters described in the scene, "
    "framed appropriately for widescreen display.",
])

CAST_TEMPLATE = "The scene must include ONLY the following characters: {characters}"
NO_CAST = (
    "The scene must contain NO characters. "
    "Focus only on the environment and setting described."
)


@dataclass
class ReferenceContext:
    """Prompt plus ordered reference images for one generation call."""

    prompt: str
    references: List[ImageBlob] = field(default_factory=list)


@dataclass
class RegenerationPlan:
    """
    What a portrait regeneration keeps and what it asks for.

    ``kept`` maps slot to the stored image retained verbatim;
    ``contexts`` maps slot to the request for each slot being regenerated;
    ``fallbacks`` maps slot to the stored image used if that request fails.
    """

    kept: Dict[int, ImageBlob] = field(default_factory=dict)
    contexts: Dict[int, ReferenceContext] = field(default_factory=dict)
    fallbacks: Dict[int, ImageBlob] = field(default_factory=dict)

    @property
    def is_full(self) -> bool:
        return not self.kept and not self.fallbacks


class ReferenceContextBuilder:
    """
    Computes generation contexts for portraits and panels.

    The builder is pure: it reads nothing from the store and every input
    is passed explicitly, including which portrait slots are selected.
    """

    def __init__(self, continuity_panels: int = 2, aspect_ratio: str = "16:9"):
        """
        Initialize the builder.

        Args:
            continuity_panels: Number of preceding panels used as references
            aspect_ratio: Aspect ratio requested for panels
        """
        self.continuity_panels = continuity_panels
        self.aspect_ratio = aspect_ratio

    @classmethod
    def from_config(cls, config) -> "ReferenceContextBuilder":
        return cls(
            continuity_panels=config.continuity.continuity_panels,
            aspect_ratio=config.continuity.aspect_ratio,
        )

    # -------------------------------------------------------------------------
    # Character portraits
    # -------------------------------------------------------------------------

    def character_prompts(self, style: str, description: str) -> List[str]:
        """Cold-start prompts, one per slot."""
        description = sanitize_prompt(description)
        return [
            template.format(style=style, description=description)
            for template in CHARACTER_TEMPLATES
        ]

    def full_generation(
        self,
        style: str,
        description: str,
        guidance: str = "",
    ) -> Dict[int, ReferenceContext]:
        """Contexts for generating every slot from scratch (no references)."""
        guidance = sanitize_prompt(guidance)
        contexts = {}
        for slot, prompt in enumerate(self.character_prompts(style, description)):
            if guidance:
                prompt += GUIDANCE_SUFFIX.format(guidance=guidance)
            contexts[slot] = ReferenceContext(prompt=prompt)
        return contexts

    def plan_regeneration(
        self,
        character: Character,
        style: str,
        selected_slots: Iterable[int] = (),
        guidance: str = "",
        keep_only_selected: bool = False,
    ) -> RegenerationPlan:
        """
        Plan a full or partial portrait regeneration.

        Args:
            character: Character with its current portraits
            style: Series style
            selected_slots: Slots marked keep/selected
            guidance: Optional free-text instructions
            keep_only_selected: Keep the selected slots and regenerate the
                rest; otherwise every slot is regenerated from scratch

        Returns:
            RegenerationPlan

        Raises:
            ValidationError: If a selected slot is out of range or empty
        """
        selected = sorted(set(selected_slots))
        if not keep_only_selected or not selected:
            return RegenerationPlan(
                contexts=self.full_generation(style, character.description, guidance)
            )

        for slot in selected:
            if not 0 <= slot < PORTRAIT_SLOTS:
                raise ValidationError(
                    f"Portrait slot out of range: {slot}",
                    field="selected_slots",
                    value=slot,
                    constraint=f"0 <= slot < {PORTRAIT_SLOTS}",
                )
            if character.image_for_slot(slot) is None:
                raise ValidationError(
                    f"Portrait slot {slot} has no image to keep",
                    field="selected_slots",
                    value=slot,
                )

        references = [character.image_for_slot(slot) for slot in selected]
        guidance = sanitize_prompt(guidance)
        plan = RegenerationPlan()

        for slot, prompt in enumerate(self.character_prompts(style, character.description)):
            existing = character.image_for_slot(slot)
            if slot in selected:
                plan.kept[slot] = existing
                continue

            prompt += CONSISTENCY_SUFFIX
            if guidance:
                prompt += GUIDANCE_SUFFIX.format(guidance=guidance)
            plan.contexts[slot] = ReferenceContext(prompt=prompt, references=list(references))
            if existing is not None:
                plan.fallbacks[slot] = existing

        logger.debug(
            f"Partial regeneration of {character.id}: keep {sorted(plan.kept)}, "
            f"regenerate {sorted(plan.contexts)}"
        )
        return plan

    # -------------------------------------------------------------------------
    # Panels
    # -------------------------------------------------------------------------

    def preceding_for_new(self, panels: Sequence[Panel]) -> List[Panel]:
        """The last panels of the episode by order."""
        if self.continuity_panels <= 0:
            return []
        ordered = sorted(panels, key=lambda p: p.order)
        return ordered[-self.continuity_panels:]

    def preceding_for_edit(self, panels: Sequence[Panel], panel_id: str) -> List[Panel]:
        """
        The panels immediately before ``panel_id``.

        ``panels`` must be the episode as it stood when the edit started.
        """
        ordered = sorted(panels, key=lambda p: p.order)
        index = next((i for i, p in enumerate(ordered) if p.id == panel_id), None)
        if index is None:
            raise ValidationError(
                f"Panel {panel_id} is not part of the given sequence",
                field="panel_id",
                value=panel_id,
            )
        return ordered[max(0, index - self.continuity_panels):index]

    def panel_context(
        self,
        style: str,
        scene_description: str,
        dialogue: str = "",
        characters: Sequence[Character] = (),
        preceding: Sequence[Panel] = (),
    ) -> ReferenceContext:
        """
        Build the context for a new or edited panel.

        Args:
            style: Series style
            scene_description: Scene text, restated verbatim
            dialogue: Dialogue text, restated verbatim
            characters: Characters present, in series character order
            preceding: Continuity panels, in order

        Returns:
            ReferenceContext
        """
        if characters:
            cast = CAST_TEMPLATE.format(
                characters=". ".join(
                    f"{c.name}: {sanitize_prompt(c.description)}" for c in characters
                )
            )
        else:
            cast = NO_CAST

        prompt = PANEL_TEMPLATE.format(
            style=style,
            aspect_ratio=self.aspect_ratio,
            cast=cast,
            scene=scene_description,
            dialogue=dialogue,
        )

        references: List[ImageBlob] = []
        for character in characters:
            references.extend(character.image_blobs)
        references.extend(panel.image for panel in preceding)

        logger.debug(
            f"Panel context: {len(characters)} characters, "
            f"{len(preceding)} continuity panels, {len(references)} references"
        )
        return ReferenceContext(prompt=prompt, references=references)
