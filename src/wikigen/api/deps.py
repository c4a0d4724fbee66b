"""FastAPI dependency injection functions."""

from functools import lru_cache

from fastapi import Request

from wikigen.config import Config, load_settings
from wikigen.db.connection import Database
from wikigen.db.migrations import run_migrations
from wikigen.llm.client import LLMClient
from wikigen.service import ANONYMOUS_CALLER, WikiService, build_service
from wikigen.throttle import GenerationController
from wikigen.vectorstore.store import VectorStore


@lru_cache
def get_settings() -> Config:
    """Get cached application settings."""
    return load_settings()


_db_instance: Database | None = None


def get_db() -> Database:
    """Get database connection with migrations applied."""
    global _db_instance
    settings = get_settings()

    # Check if cached connection is stale (db file was deleted)
    if _db_instance is not None and not settings.db_path.exists():
        _db_instance.close()
        _db_instance = None

    if _db_instance is None:
        settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        _db_instance = Database(settings.db_path)
        run_migrations(_db_instance)
    return _db_instance


def _reset_db_instance() -> None:
    """Reset database instance (for testing only)."""
    global _db_instance
    if _db_instance is not None:
        _db_instance.close()
        _db_instance = None


_vectorstore_instance: VectorStore | None = None


def get_vectorstore() -> VectorStore:
    """Get the vector store holding the document corpus."""
    global _vectorstore_instance
    if _vectorstore_instance is None:
        settings = get_settings()
        settings.chroma_path.mkdir(parents=True, exist_ok=True)
        _vectorstore_instance = VectorStore(settings.chroma_path)
    return _vectorstore_instance


def _reset_vectorstore_instance() -> None:
    """Reset vectorstore instance (for testing only)."""
    global _vectorstore_instance
    if _vectorstore_instance is not None:
        _vectorstore_instance.close()
        _vectorstore_instance = None


_llm_instance: LLMClient | None = None


def get_llm() -> LLMClient:
    """Get LLM client instance."""
    global _llm_instance
    if _llm_instance is None:
        settings = get_settings()
        _llm_instance = LLMClient(
            provider=settings.llm_provider,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            endpoint=settings.llm_endpoint,
            log_path=settings.llm_log_path,
        )
    return _llm_instance


def _reset_llm_instance() -> None:
    """Reset LLM client instance (for testing only)."""
    global _llm_instance
    _llm_instance = None


_controller_instance: GenerationController | None = None


def get_controller() -> GenerationController:
    """Get the process-wide generation controller.

    Dedup, rate limit windows and cooldowns only work when every request
    shares one controller.
    """
    global _controller_instance
    if _controller_instance is None:
        throttle = get_settings().throttle
        _controller_instance = GenerationController(
            rate_limit_requests=throttle.rate_limit_requests,
            rate_limit_window_seconds=throttle.rate_limit_window_seconds,
            cooldown_seconds=throttle.cooldown_seconds,
        )
    return _controller_instance


def _reset_controller_instance() -> None:
    """Reset generation controller (for testing only)."""
    global _controller_instance
    _controller_instance = None


_service_instance: WikiService | None = None


def get_service() -> WikiService:
    """Get the wiki service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = build_service(
            get_settings(), get_db(), get_llm(), get_vectorstore(), get_controller()
        )
    return _service_instance


def _reset_service_instance() -> None:
    """Reset wiki service instance (for testing only)."""
    global _service_instance
    _service_instance = None


def get_caller_id(request: Request) -> str:
    """Identify the caller for rate limiting by client address."""
    if request.client is None:
        return ANONYMOUS_CALLER
    return request.client.host
