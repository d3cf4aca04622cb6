"""
Tests for configuration loading and validation.
"""

from pathlib import Path

import pytest

from comicforge.core.config import (
    Config,
    GenerationConfig,
    NormalizationConfig,
    get_config,
    reset_config,
    set_config,
)
from comicforge.core.exceptions import ConfigurationError


class TestConfigDefaults:
    """Built-in defaults."""

    def test_defaults(self):
        config = Config()

        assert config.generation.provider == "gemini"
        assert config.generation.model == "gemini-2.5-flash-image-preview"
        assert config.generation.max_retries == 3
        assert config.generation.retry_base_delay == 1.0
        assert config.normalization.max_dimension == 1024
        assert config.normalization.quality == 0.8
        assert config.normalization.format == "JPEG"
        assert config.continuity.continuity_panels == 2
        assert config.continuity.aspect_ratio == "16:9"

    def test_to_dict_sections(self):
        data = Config().to_dict()

        assert set(data) == {"generation", "normalization", "continuity", "storage"}
        assert data["generation"]["max_retries"] == 3

    def test_shipped_defaults_file_matches(self, monkeypatch):
        monkeypatch.delenv("COMICFORGE_MODEL", raising=False)
        monkeypatch.delenv("COMICFORGE_DB", raising=False)
        shipped = Path(__file__).parent.parent / "config" / "defaults.yaml"

        config = Config.load(shipped)

        assert config.to_dict() == Config().to_dict()


class TestConfigValidation:
    """Rejected values."""

    def test_max_retries_bounds(self):
        with pytest.raises(ConfigurationError):
            GenerationConfig(max_retries=0)
        with pytest.raises(ConfigurationError):
            GenerationConfig(max_retries=11)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            GenerationConfig(provider="dalle")

    def test_quality_bounds(self):
        with pytest.raises(ConfigurationError):
            NormalizationConfig(quality=0)
        with pytest.raises(ConfigurationError):
            NormalizationConfig(quality=1.5)

    def test_format_is_normalized(self):
        assert NormalizationConfig(format="webp").format == "WEBP"
        with pytest.raises(ConfigurationError):
            NormalizationConfig(format="bmp")

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            Config.from_dict({"generation": {"retries": 3}})

    def test_non_numeric_value(self):
        with pytest.raises(ConfigurationError):
            Config.from_dict({"generation": {"max_retries": "many"}})


class TestConfigLoading:
    """YAML files and environment interpolation."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "generation:\n"
            "  max_retries: 5\n"
            "  retry_base_delay: 0.25\n"
            "normalization:\n"
            "  max_dimension: 512\n"
        )

        config = Config.load(path)

        assert config.generation.max_retries == 5
        assert config.generation.retry_base_delay == 0.25
        assert config.normalization.max_dimension == 512
        assert config.normalization.quality == 0.8

    def test_environment_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_RETRIES", "7")
        path = tmp_path / "config.yaml"
        path.write_text(
            "generation:\n"
            "  max_retries: ${TEST_RETRIES}\n"
            "storage:\n"
            "  db_path: ${TEST_MISSING_DB:-/tmp/fallback.db}\n"
        )

        config = Config.load(path)

        assert config.generation.max_retries == 7
        assert config.storage.db_path == "/tmp/fallback.db"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("generation: [unclosed\n")

        with pytest.raises(ConfigurationError):
            Config.load(path)

    def test_global_config(self):
        custom = Config.from_dict({"generation": {"max_retries": 2}})
        try:
            set_config(custom)
            assert get_config() is custom
        finally:
            reset_config()
