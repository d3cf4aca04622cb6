"""
Pytest configuration and shared fixtures.

Generation is driven by ScriptedProvider, a BaseImageProvider whose single
attempt is answered by a test-supplied responder, so the real retry loop
runs without any network access or real delays.
"""

import asyncio
import io
from typing import Callable, List, Optional, Sequence, Tuple

import pytest
from PIL import Image

from comicforge.api.base import BaseImageProvider
from comicforge.context.references import ReferenceContextBuilder
from comicforge.context.store import SQLiteDocumentStore
from comicforge.core.exceptions import TransientGenerationFailure
from comicforge.series.models import SERIES, EPISODES, Episode, Series
from comicforge.utils.image_utils import ImageBlob, ImageNormalizer
from comicforge.workflow.characters import CharacterAssetManager
from comicforge.workflow.panels import PanelSequenceManager


def make_png(width: int = 64, height: int = 64, color=(200, 30, 30), mode: str = "RGB") -> bytes:
    """Encode a solid-color PNG."""
    if mode == "RGBA" and len(color) == 3:
        color = tuple(color) + (255,)
    out = io.BytesIO()
    Image.new(mode, (width, height), color=color).save(out, "PNG")
    return out.getvalue()


def color_for(index: int) -> Tuple[int, int, int]:
    """A distinct solid color per call index."""
    return ((index * 53) % 256, (index * 97 + 40) % 256, (index * 151 + 80) % 256)


class ScriptedProvider(BaseImageProvider):
    """Provider whose attempts are answered by ``responder(prompt, references, call_index)``."""

    def __init__(self, responder: Optional[Callable] = None, **kwargs):
        self.calls: List[Tuple[str, List[ImageBlob]]] = []
        self.attempts = 0
        self.sleeps: List[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.responder = responder or self.default_responder
        kwargs.setdefault("api_key", "test-key")
        kwargs.setdefault("sleep", self._record_sleep)
        super().__init__(**kwargs)

    @property
    def provider_name(self) -> str:
        return "scripted"

    @property
    def default_model(self) -> str:
        return "scripted-model"

    @property
    def env_key_name(self) -> str:
        return "SCRIPTED_API_KEY"

    def _get_default_base_url(self) -> str:
        return "http://scripted.invalid"

    async def _record_sleep(self, delay: float) -> None:
        self.sleeps.append(delay)

    @staticmethod
    def default_responder(prompt: str, references: Sequence[ImageBlob], index: int) -> ImageBlob:
        return ImageBlob(make_png(color=color_for(index)), "image/png")

    async def _make_generation_request(self, prompt, references):
        index = self.attempts
        self.attempts += 1
        self.calls.append((prompt, list(references)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Yield so concurrent requests overlap
            await asyncio.sleep(0)
            return self.responder(prompt, references, index)
        finally:
            self.in_flight -= 1

    def prompts(self) -> List[str]:
        return [prompt for prompt, _ in self.calls]


def failing_when(predicate: Callable[[str], bool]) -> Callable:
    """Responder that fails every attempt whose prompt matches ``predicate``."""
    def responder(prompt, references, index):
        if predicate(prompt):
            raise TransientGenerationFailure("scripted failure", provider="scripted")
        return ScriptedProvider.default_responder(prompt, references, index)
    return responder


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def store(tmp_path):
    store = SQLiteDocumentStore(tmp_path / "comicforge.db")
    yield store
    store.close()


@pytest.fixture
def provider():
    return ScriptedProvider(max_retries=3)


@pytest.fixture
def normalizer():
    return ImageNormalizer(max_dimension=1024, quality=0.8)


@pytest.fixture
def builder():
    return ReferenceContextBuilder()


@pytest.fixture
def characters(store, provider, normalizer, builder):
    return CharacterAssetManager(store, provider, normalizer=normalizer, builder=builder)


@pytest.fixture
def panels(store, provider, characters, normalizer, builder):
    return PanelSequenceManager(
        store, provider, characters, normalizer=normalizer, builder=builder
    )


@pytest.fixture
def series(store):
    series = Series(title="Night Shift", style="noir ink, heavy shadows")
    store.set(SERIES, series.id, series.to_dict())
    return series


@pytest.fixture
def episode(store, series):
    episode = Episode(series_id=series.id, title="Pilot")
    store.set(EPISODES, episode.id, episode.to_dict())
    return episode
