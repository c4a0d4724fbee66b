"""Configuration system for wikigen.

Settings come from three places, in increasing priority: schema defaults,
a ``config.ini`` file in the data directory, and environment variables.
The WIKI_* environment variables override keys of the [cache] section and
go through the same validation as values read from the INI file.
"""

from configparser import ConfigParser
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional
import os


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# =============================================================================
# Schema
# =============================================================================

# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "retrieval": {
        "initial_threshold": (float, 0.35, 0.0, 1.0, "Similarity threshold for first search"),
        "fallback_threshold": (float, 0.25, 0.0, 1.0, "Threshold for the empty-result retry"),
        "search_limit": (int, 30, 1, 200, "Chunks requested from the vector store"),
        "max_results": (int, 15, 1, 100, "Chunks kept after diversification"),
        "max_per_source": (int, 3, 1, 20, "Max chunks from one document"),
        "official_boost_factor": (float, 1.25, 1.0, 2.0, "Similarity multiplier for officials"),
        "min_official_similarity": (float, 0.30, 0.0, 1.0, "Minimum similarity to boost"),
        "max_similarity_gap": (float, 0.15, 0.0, 1.0, "Max gap to best non-official"),
        "max_official_ratio": (float, 0.7, 0.0, 1.0, "Max share of official chunks"),
    },
    "context": {
        "max_context_tokens": (int, 8000, 500, 100_000, "Token budget for assembled context"),
        "dedup_threshold": (float, 0.95, 0.5, 1.0, "Jaccard similarity treated as duplicate"),
        "min_truncation_tokens": (int, 100, 0, 5000, "Budget needed to add a truncated chunk"),
    },
    "quality": {
        "high_quality_similarity": (float, 0.5, 0.0, 1.0, "Similarity counted as high quality"),
        "pure_min_avg_similarity": (float, 0.60, 0.0, 1.0, "pure_retrieval: min average"),
        "pure_min_high_quality": (int, 5, 0, 100, "pure_retrieval: min high-quality chunks"),
        "pure_min_sources": (int, 2, 0, 100, "pure_retrieval: min unique documents"),
        "hybrid_min_avg_similarity": (float, 0.45, 0.0, 1.0, "hybrid: min average"),
        "hybrid_min_high_quality": (int, 3, 0, 100, "hybrid: min high-quality chunks"),
        "hybrid_min_sources": (int, 1, 0, 100, "hybrid: min unique documents"),
        "low_quality_min_count": (int, 3, 0, 100, "Low-quality hybrid: min chunks"),
        "low_quality_min_avg_similarity": (float, 0.35, 0.0, 1.0, "Low-quality hybrid: min avg"),
    },
    "confidence": {
        "publish_threshold": (float, 0.6, 0.0, 1.0, "Minimum confidence to publish"),
        "evaluate_content": (bool, False, None, None, "Run the LLM content evaluator"),
    },
    "cache": {
        "ttl_hours": (int, 48, 1, 168, "Hours before a page is stale"),
        "max_pages": (int, 1000, 10, None, "Maximum cached pages"),
        "regeneration_batch_size": (int, 10, 1, 50, "Pages regenerated per batch"),
        "popular_threshold": (int, 10, 1, None, "Views for a page to count as popular"),
        "low_confidence_threshold": (float, 0.4, 0.0, 1.0, "Confidence reported as low"),
        "min_publish_confidence": (float, 0.3, 0.0, 1.0, "Default low-confidence purge cut"),
        "regeneration_delay_ms": (int, 1000, 0, 60_000, "Delay between batch generations"),
        "enable_warming_on_startup": (bool, False, None, None, "Warm popular topics at start"),
        "enable_analytics": (bool, True, None, None, "Record cache hit/miss events"),
    },
    "throttle": {
        "rate_limit_requests": (int, 10, 1, 1000, "Generations per caller per window"),
        "rate_limit_window_seconds": (float, 60.0, 1.0, 3600.0, "Rate limit window"),
        "cooldown_seconds": (float, 30.0, 0.0, 3600.0, "Per-slug regeneration cooldown"),
        "scheduler_max_workers": (int, 1, 1, 16, "Concurrent batch generations"),
    },
    "links": {
        "extract_entities": (bool, True, None, None, "Extract entities and inject links"),
        "related_limit": (int, 10, 1, 100, "Related pages returned"),
        "backlink_limit": (int, 20, 1, 200, "Backlinks returned"),
    },
    "web": {
        "enabled": (bool, True, None, None, "Fetch authoritative web sources"),
        "timeout_seconds": (float, 5.0, 0.5, 60.0, "Per-domain fetch timeout"),
        "max_chars": (int, 2000, 100, 20_000, "Characters kept per domain"),
        "cache_ttl_hours": (int, 24, 1, 168, "Lifetime of cached fetches"),
    },
    "llm": {
        "max_tokens": (int, 4096, 256, 32768, "Max response tokens"),
        "default_temperature": (float, 0.7, 0.0, 2.0, "Default LLM temperature"),
        "json_temperature": (float, 0.3, 0.0, 1.0, "Temperature for structured output"),
        "max_retries": (int, 3, 0, 10, "Retries for transient provider errors"),
        "retry_base_delay": (float, 1.0, 0.0, 60.0, "Base backoff delay in seconds"),
    },
}

# Environment variable -> cache key
CACHE_ENV_OVERRIDES = {
    "WIKI_CACHE_TTL_HOURS": "ttl_hours",
    "WIKI_MAX_CACHED_PAGES": "max_pages",
    "WIKI_REGEN_BATCH_SIZE": "regeneration_batch_size",
    "WIKI_POPULAR_THRESHOLD": "popular_threshold",
    "WIKI_LOW_CONFIDENCE_THRESHOLD": "low_confidence_threshold",
    "WIKI_MIN_PUBLISH_CONFIDENCE": "min_publish_confidence",
    "WIKI_REGEN_DELAY_MS": "regeneration_delay_ms",
    "WIKI_ENABLE_WARMING": "enable_warming_on_startup",
    "WIKI_ENABLE_ANALYTICS": "enable_analytics",
}


# =============================================================================
# Section Dataclasses
# =============================================================================


@dataclass(frozen=True)
class RetrievalConfig:
    """Search, diversification and official-source settings."""

    initial_threshold: float
    fallback_threshold: float
    search_limit: int
    max_results: int
    max_per_source: int
    official_boost_factor: float
    min_official_similarity: float
    max_similarity_gap: float
    max_official_ratio: float


@dataclass(frozen=True)
class ContextConfig:
    max_context_tokens: int
    dedup_threshold: float
    min_truncation_tokens: int


@dataclass(frozen=True)
class QualityConfig:
    """Generation-mode decision table."""

    high_quality_similarity: float
    pure_min_avg_similarity: float
    pure_min_high_quality: int
    pure_min_sources: int
    hybrid_min_avg_similarity: float
    hybrid_min_high_quality: int
    hybrid_min_sources: int
    low_quality_min_count: int
    low_quality_min_avg_similarity: float


@dataclass(frozen=True)
class ConfidenceConfig:
    publish_threshold: float
    evaluate_content: bool


@dataclass(frozen=True)
class CacheConfig:
    """Page cache lifecycle settings."""

    ttl_hours: int
    max_pages: int
    regeneration_batch_size: int
    popular_threshold: int
    low_confidence_threshold: float
    min_publish_confidence: float
    regeneration_delay_ms: int
    enable_warming_on_startup: bool
    enable_analytics: bool


@dataclass(frozen=True)
class ThrottleConfig:
    rate_limit_requests: int
    rate_limit_window_seconds: float
    cooldown_seconds: float
    scheduler_max_workers: int


@dataclass(frozen=True)
class LinksConfig:
    extract_entities: bool
    related_limit: int
    backlink_limit: int


@dataclass(frozen=True)
class WebConfig:
    """Authoritative web augmentation settings."""

    enabled: bool
    timeout_seconds: float
    max_chars: int
    cache_ttl_hours: int


@dataclass(frozen=True)
class LLMConfig:
    """LLM client configuration."""

    max_tokens: int
    default_temperature: float
    json_temperature: float
    max_retries: int
    retry_base_delay: float


SECTION_CLASSES: dict[str, type] = {
    "retrieval": RetrievalConfig,
    "context": ContextConfig,
    "quality": QualityConfig,
    "confidence": ConfidenceConfig,
    "cache": CacheConfig,
    "throttle": ThrottleConfig,
    "links": LinksConfig,
    "web": WebConfig,
    "llm": LLMConfig,
}


# =============================================================================
# Loading
# =============================================================================


def _load_section(
    parser: ConfigParser, section: str, schema: dict[str, tuple[type, Any, Any, Any, str]]
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If a value has the wrong type or is out of range
    """
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if parser.has_option(section, key):
            raw_value = parser.get(section, key)
            value: bool | int | float | str
            try:
                if typ is bool:
                    value = raw_value.lower() in ("true", "1", "yes", "on")
                elif typ is int:
                    value = int(raw_value)
                elif typ is float:
                    value = float(raw_value)
                else:
                    value = raw_value
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
                ) from e
        else:
            value = default

        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        result[key] = value

    return result


def _section_defaults(section: str) -> Any:
    """Build a section dataclass populated with schema defaults."""
    values = {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}
    return SECTION_CLASSES[section](**values)


def _load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Mapping[str, str]]] = None,
) -> "Config":
    """Load configuration from an INI file plus raw string overrides.

    Args:
        config_path: Path to config file. If None, uses defaults from schema.
        overrides: section -> key -> raw value, applied on top of the file.

    Returns:
        Config object with all sections populated.

    Raises:
        ConfigError: If validation fails
    """
    parser = ConfigParser()

    if config_path and config_path.exists():
        parser.read(config_path)

    for section, values in (overrides or {}).items():
        if not parser.has_section(section):
            parser.add_section(section)
        for key, raw in values.items():
            parser.set(section, key, raw)

    sections = {
        name: SECTION_CLASSES[name](**_load_section(parser, name, schema))
        for name, schema in CONFIG_SCHEMA.items()
    }
    return Config(**sections)


@dataclass(frozen=True)
class Config:
    """Complete application configuration."""

    data_dir: Path = None  # type: ignore[assignment]  # Set in __post_init__ if None
    active_provider: str = "ollama"
    active_model: str = "llama2"
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    ollama_endpoint: str = "http://localhost:11434"

    # Section configs, filled with schema defaults in __post_init__
    retrieval: RetrievalConfig = None  # type: ignore[assignment]
    context: ContextConfig = None  # type: ignore[assignment]
    quality: QualityConfig = None  # type: ignore[assignment]
    confidence: ConfidenceConfig = None  # type: ignore[assignment]
    cache: CacheConfig = None  # type: ignore[assignment]
    throttle: ThrottleConfig = None  # type: ignore[assignment]
    links: LinksConfig = None  # type: ignore[assignment]
    web: WebConfig = None  # type: ignore[assignment]
    llm: LLMConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        # frozen=True, so fields are set through object.__setattr__
        if self.data_dir is None:
            object.__setattr__(self, "data_dir", Path.home() / ".wikigen")
        for section in SECTION_CLASSES:
            if getattr(self, section) is None:
                object.__setattr__(self, section, _section_defaults(section))

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database holding pages and the link graph."""
        return self.data_dir / "wikigen.db"

    @property
    def chroma_path(self) -> Path:
        """Path to ChromaDB vector store directory."""
        return self.data_dir / "chroma"

    @property
    def llm_log_path(self) -> Path:
        """Path to LLM query log file."""
        return self.data_dir / "logs" / "llm-queries.jsonl"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.ini"

    @property
    def llm_provider(self) -> str:
        """LLM provider name."""
        return self.active_provider

    @property
    def llm_model(self) -> str:
        """LLM model name."""
        return self.active_model

    @property
    def llm_api_key(self) -> Optional[str]:
        """API key for the active LLM provider."""
        provider_keys = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "google": self.google_api_key,
        }
        return provider_keys.get(self.active_provider)

    @property
    def llm_endpoint(self) -> Optional[str]:
        """Endpoint for LLM provider (mainly for Ollama)."""
        if self.active_provider == "ollama":
            return self.ollama_endpoint
        return None


PROVIDER_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20241022",
    "google": "gemini-1.5-pro",
    "ollama": "llama2",
}


def _detect_provider_from_keys() -> tuple[str, str]:
    """Auto-detect provider from available API keys.

    Returns:
        Tuple of (provider, model). Falls back to ollama if no keys are found.
    """
    if os.getenv("OPENAI_API_KEY"):
        return ("openai", PROVIDER_DEFAULT_MODELS["openai"])
    if os.getenv("ANTHROPIC_API_KEY"):
        return ("anthropic", PROVIDER_DEFAULT_MODELS["anthropic"])
    if os.getenv("GOOGLE_API_KEY"):
        return ("google", PROVIDER_DEFAULT_MODELS["google"])
    return ("ollama", PROVIDER_DEFAULT_MODELS["ollama"])


def _cache_env_overrides() -> dict[str, dict[str, str]]:
    """Collect WIKI_* environment variables as raw [cache] overrides."""
    values = {
        key: os.environ[env_name]
        for env_name, key in CACHE_ENV_OVERRIDES.items()
        if os.environ.get(env_name)
    }
    return {"cache": values} if values else {}


def resolve_data_dir() -> Path:
    """Data directory from WIKIGEN_DATA_DIR, defaulting to ~/.wikigen."""
    data_dir_str = os.getenv("WIKIGEN_DATA_DIR")
    return Path(data_dir_str) if data_dir_str else Path.home() / ".wikigen"


@lru_cache(maxsize=1)
def load_settings() -> Config:
    """Load settings from environment variables and config file.

    Settings are cached for the lifetime of the application.
    Use load_settings.cache_clear() to reload settings.

    Returns:
        Config object populated from environment variables and config file.

    Raises:
        ConfigError: If the config file or a WIKI_* variable is invalid.
    """
    data_dir = resolve_data_dir()

    config_file = data_dir / "config.ini"
    try:
        config_exists = config_file.exists()
    except PermissionError:
        config_exists = False
    base_config = _load_config(config_file if config_exists else None, _cache_env_overrides())

    active_provider = os.getenv("ACTIVE_PROVIDER")
    active_model = os.getenv("ACTIVE_MODEL")

    if not active_provider:
        active_provider, detected_model = _detect_provider_from_keys()
        if not active_model:
            active_model = detected_model
    elif not active_model:
        active_model = PROVIDER_DEFAULT_MODELS.get(active_provider, "llama2")

    return Config(
        data_dir=data_dir,
        active_provider=active_provider,
        active_model=active_model,
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        google_api_key=os.getenv("GOOGLE_API_KEY"),
        ollama_endpoint=os.getenv("OLLAMA_ENDPOINT", "http://localhost:11434"),
        retrieval=base_config.retrieval,
        context=base_config.context,
        quality=base_config.quality,
        confidence=base_config.confidence,
        cache=base_config.cache,
        throttle=base_config.throttle,
        links=base_config.links,
        web=base_config.web,
        llm=base_config.llm,
    )
