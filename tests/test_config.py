"""Configuration loading tests."""

from pathlib import Path

import pytest

from wikigen.config import Config, ConfigError, _load_config, load_settings


def test_defaults_without_config_file():
    """Schema defaults are used when no config file exists."""
    config = _load_config(None)

    assert config.cache.ttl_hours == 48
    assert config.cache.max_pages == 1000
    assert config.retrieval.initial_threshold == 0.35
    assert config.retrieval.fallback_threshold == 0.25
    assert config.confidence.publish_threshold == 0.6
    assert config.throttle.rate_limit_requests == 10
    assert config.throttle.cooldown_seconds == 30.0


def test_config_file_values_override_defaults(tmp_path: Path):
    """Values in config.ini replace schema defaults."""
    config_file = tmp_path / "config.ini"
    config_file.write_text("[cache]\nttl_hours = 24\n\n[retrieval]\nmax_per_source = 2\n")

    config = _load_config(config_file)

    assert config.cache.ttl_hours == 24
    assert config.retrieval.max_per_source == 2


def test_out_of_range_value_raises(tmp_path: Path):
    """Values outside the schema range raise ConfigError."""
    config_file = tmp_path / "config.ini"
    config_file.write_text("[cache]\nttl_hours = 500\n")

    with pytest.raises(ConfigError, match="maximum is 168"):
        _load_config(config_file)


def test_wrong_type_raises(tmp_path: Path):
    config_file = tmp_path / "config.ini"
    config_file.write_text("[throttle]\nrate_limit_requests = lots\n")

    with pytest.raises(ConfigError, match="expected int"):
        _load_config(config_file)


def test_bool_values_are_parsed(tmp_path: Path):
    config_file = tmp_path / "config.ini"
    config_file.write_text("[cache]\nenable_warming_on_startup = yes\nenable_analytics = off\n")

    config = _load_config(config_file)

    assert config.cache.enable_warming_on_startup is True
    assert config.cache.enable_analytics is False


def test_cache_env_overrides(monkeypatch):
    """WIKI_* variables override the [cache] section."""
    monkeypatch.setenv("WIKI_CACHE_TTL_HOURS", "12")
    monkeypatch.setenv("WIKI_MAX_CACHED_PAGES", "50")
    monkeypatch.setenv("WIKI_ENABLE_WARMING", "true")
    load_settings.cache_clear()

    settings = load_settings()

    assert settings.cache.ttl_hours == 12
    assert settings.cache.max_pages == 50
    assert settings.cache.enable_warming_on_startup is True


def test_invalid_env_override_raises(monkeypatch):
    """Invalid WIKI_* values are validated like file values."""
    monkeypatch.setenv("WIKI_CACHE_TTL_HOURS", "0")
    load_settings.cache_clear()

    with pytest.raises(ConfigError, match="minimum is 1"):
        load_settings()


def test_data_dir_from_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("WIKIGEN_DATA_DIR", str(tmp_path / "data"))
    load_settings.cache_clear()

    settings = load_settings()

    assert settings.data_dir == tmp_path / "data"
    assert settings.db_path == tmp_path / "data" / "wikigen.db"
    assert settings.chroma_path == tmp_path / "data" / "chroma"


def test_provider_detected_from_api_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    load_settings.cache_clear()

    settings = load_settings()

    assert settings.llm_provider == "anthropic"
    assert settings.llm_api_key == "sk-test"


def test_falls_back_to_ollama_without_keys():
    settings = load_settings()

    assert settings.llm_provider == "ollama"
    assert settings.llm_endpoint == "http://localhost:11434"


def test_config_sections_default_when_omitted():
    """A bare Config gets every section populated with defaults."""
    config = Config()

    assert config.cache.ttl_hours == 48
    assert config.links.related_limit == 10
    assert config.web.enabled is True
