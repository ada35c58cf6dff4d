"""Tests for configuration management."""

import os
from pathlib import Path

import pytest
import yaml

from core.exceptions import ConfigurationError
from sculptembed.config import (
    DEFAULT_DB_NAME,
    EmbeddingsSettings,
    ProcessorConfig,
    find_config_files,
    load_settings,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove SCULPTEMBED_* variables so the host environment cannot leak in."""
    for key in list(os.environ):
        if key.startswith("SCULPTEMBED_"):
            monkeypatch.delenv(key)


@pytest.fixture
def config_file(tmp_path):
    """Write a YAML config and return its path."""

    def write(data, name="sculptembed.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return write


class TestDefaults:

    def test_default_values(self):
        settings = load_settings(search_dirs=[])
        assert settings.provider_id == "custom"
        assert settings.batch_size == 25
        assert settings.max_concurrency == 2
        assert settings.storage == "duckdb"
        assert settings.base_url is None
        assert settings.get_missing_config() == ["base_url (SCULPTEMBED_BASE_URL)"]

    def test_processor_config_mirrors_settings(self):
        settings = EmbeddingsSettings(batch_size=10, max_transient_errors=3, rate_limit_per_minute=60)
        config = settings.processor_config()
        assert isinstance(config, ProcessorConfig)
        assert config.batch_size == 10
        assert config.max_transient_errors == 3
        assert config.rate_limit_per_minute == 60
        assert config.skip_waf_patterns is True


class TestSources:

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("SCULPTEMBED_BASE_URL", "http://localhost:11434/api/embeddings/")
        monkeypatch.setenv("SCULPTEMBED_MODEL", "nomic-embed-text")
        monkeypatch.setenv("SCULPTEMBED_BATCH_SIZE", "8")

        settings = load_settings(search_dirs=[])

        assert settings.base_url == "http://localhost:11434/api/embeddings"
        assert settings.model == "nomic-embed-text"
        assert settings.batch_size == 8

    def test_yaml_file(self, config_file):
        path = config_file({"base_url": "https://api.example.com/v1/embeddings", "max_concurrency": 4})

        settings = load_settings(config_file=path)

        assert settings.base_url == "https://api.example.com/v1/embeddings"
        assert settings.max_concurrency == 4

    def test_environment_beats_yaml(self, config_file, monkeypatch):
        path = config_file({"model": "from-yaml", "batch_size": 5})
        monkeypatch.setenv("SCULPTEMBED_MODEL", "from-env")

        settings = load_settings(config_file=path)

        assert settings.model == "from-env"
        assert settings.batch_size == 5

    def test_overrides_beat_everything(self, config_file, monkeypatch):
        path = config_file({"model": "from-yaml"})
        monkeypatch.setenv("SCULPTEMBED_MODEL", "from-env")

        settings = load_settings(config_file=path, model="from-override", api_key=None)

        assert settings.model == "from-override"
        assert settings.api_key is None

    def test_search_dirs_discover_default_names(self, tmp_path, config_file):
        config_file({"storage": "memory"}, name=".sculptembed.yml")

        assert find_config_files([tmp_path]) == [tmp_path / ".sculptembed.yml"]
        assert load_settings(search_dirs=[tmp_path]).storage == "memory"

    def test_yaml_not_used_after_load(self, config_file):
        path = config_file({"storage": "memory"})
        load_settings(config_file=path)
        assert EmbeddingsSettings().storage == "duckdb"


class TestValidation:

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("model: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_settings(config_file=path)

    def test_base_url_scheme(self):
        with pytest.raises(ConfigurationError):
            load_settings(search_dirs=[], base_url="localhost:8080")

    def test_blank_model(self):
        with pytest.raises(ConfigurationError):
            load_settings(search_dirs=[], model="   ")

    def test_out_of_range_batch_size(self):
        with pytest.raises(ConfigurationError):
            load_settings(search_dirs=[], batch_size=0)

    def test_api_key_hidden_in_repr(self):
        settings = EmbeddingsSettings(api_key="sk-secret")
        assert "sk-secret" not in repr(settings)
        assert settings.api_key.get_secret_value() == "sk-secret"


class TestDbPath:

    def test_defaults_inside_vault(self, tmp_path):
        assert EmbeddingsSettings().resolve_db_path(tmp_path) == tmp_path / DEFAULT_DB_NAME

    def test_explicit_path(self, tmp_path):
        target = tmp_path / "vectors.duckdb"
        assert EmbeddingsSettings(db_path=str(target)).resolve_db_path(Path("/elsewhere")) == target
