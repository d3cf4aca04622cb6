"""
Tests for the ComicStudio facade.
"""

import pytest

from comicforge import ComicStudio
from comicforge.api import GeminiImageProvider
from comicforge.core.config import Config
from comicforge.core.exceptions import ResourceNotFoundError, ValidationError
from comicforge.series.models import CharacterStatus, EPISODES, PANELS

from conftest import ScriptedProvider


@pytest.fixture
def studio(store):
    config = Config.from_dict({"generation": {"max_retries": 2}})
    return ComicStudio(config=config, store=store, provider=ScriptedProvider())


class TestSeriesAndEpisodes:

    def test_create_and_list_series(self, studio):
        first = studio.create_series("Night Shift", "noir ink", owner_id="u1")
        studio.create_series("Day Job", "pastel watercolor", owner_id="u2")

        assert studio.get_series(first.id).style == "noir ink"
        assert [s.title for s in studio.list_series()] == ["Night Shift", "Day Job"]
        assert [s.id for s in studio.list_series(owner_id="u1")] == [first.id]

    def test_series_title_required(self, studio):
        with pytest.raises(ValidationError):
            studio.create_series("", "noir ink")

    def test_episode_requires_series(self, studio):
        with pytest.raises(ResourceNotFoundError):
            studio.create_episode("missing", "Pilot")

    def test_list_episodes(self, studio):
        series = studio.create_series("Night Shift", "noir ink")
        pilot = studio.create_episode(series.id, "Pilot")
        second = studio.create_episode(series.id, "Second Shift")

        assert [e.id for e in studio.list_episodes(series.id)] == [pilot.id, second.id]
        assert studio.get_episode(pilot.id).title == "Pilot"

    @pytest.mark.asyncio
    async def test_delete_episode_removes_panels(self, studio, store):
        series = studio.create_series("Night Shift", "noir ink")
        episode = studio.create_episode(series.id, "Pilot")
        other = studio.create_episode(series.id, "Other")
        await studio.create_panel(episode.id, "scene 0")
        await studio.create_panel(episode.id, "scene 1")
        kept = await studio.create_panel(other.id, "elsewhere")

        studio.delete_episode(episode.id)

        assert store.get(EPISODES, episode.id) is None
        assert store.count(PANELS, where={"episode_id": episode.id}) == 0
        assert studio.get_panel(kept.id).episode_id == other.id


class TestStudioWorkflow:

    @pytest.mark.asyncio
    async def test_character_and_panel_flow(self, studio):
        provider = studio.provider
        series = studio.create_series("Night Shift", "noir ink")
        episode = studio.create_episode(series.id, "Pilot")

        mara = await studio.create_character(series.id, "Mara", "a tired detective")
        assert mara.status == CharacterStatus.READY
        assert [c.id for c in studio.list_characters(series.id)] == [mara.id]

        panel = await studio.create_panel(
            episode.id, "Mara steps out of a taxi", dialogue="Another long night.",
            character_ids=[mara.id],
        )
        assert panel.character_ids == [mara.id]

        edited = await studio.edit_panel(panel.id, "Mara steps into the rain", character_ids=[mara.id])
        assert edited.order == 0
        assert studio.list_panels(episode.id)[0].scene_description == "Mara steps into the rain"

        regenerated = await studio.regenerate_character(
            mara.id, selected_slots=[1], keep_only_selected=True
        )
        assert regenerated.image_for_slot(1).data == mara.image_for_slot(1).data

        updated = await studio.update_character(mara.id, "Mara", "a detective with a red scarf")
        assert studio.get_character(mara.id).description == "a detective with a red scarf"
        assert updated.status == CharacterStatus.READY

        studio.delete_panel(panel.id)
        studio.delete_character(mara.id)
        assert studio.list_panels(episode.id) == []
        assert studio.list_characters(series.id) == []
        assert len(provider.calls) > 0

    @pytest.mark.asyncio
    async def test_style_change_applies_to_later_prompts(self, studio):
        series = studio.create_series("Night Shift", "noir ink")
        episode = studio.create_episode(series.id, "Pilot")

        updated = studio.update_series_style(series.id, "bright manga")
        await studio.create_panel(episode.id, "a rooftop")

        assert updated.style == "bright manga"
        assert 'in the style of: "bright manga"' in studio.provider.calls[-1][0]

    def test_configured_attempts_reach_the_managers(self, studio):
        assert studio.characters.max_retries == 2
        assert studio.panels.max_retries == 2

    @pytest.mark.asyncio
    async def test_builds_provider_from_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        config = Config.from_dict({"storage": {"db_path": str(tmp_path / "studio.db")}})

        async with ComicStudio(config=config) as studio:
            assert isinstance(studio.provider, GeminiImageProvider)
            assert studio.provider.api_key == "test-key"
            assert studio.store.db_path == str(tmp_path / "studio.db")
