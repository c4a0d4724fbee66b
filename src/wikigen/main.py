"""ASGI application serving wiki pages, cache administration and the link graph."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# basicConfig has to run before the wikigen imports below create their loggers
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)

# uvicorn installs its own handlers; give them the same format as ours
_formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
for _name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
    _uvicorn_logger = logging.getLogger(_name)
    _uvicorn_logger.handlers.clear()
    _stream = logging.StreamHandler()
    _stream.setFormatter(_formatter)
    _uvicorn_logger.addHandler(_stream)

from wikigen.api.deps import get_service, get_settings  # noqa: E402
from wikigen.api.routers import cache, graph, wiki  # noqa: E402
from wikigen.jobs.warm import warm_cache  # noqa: E402
from wikigen.config import ConfigError, resolve_data_dir  # noqa: E402

logger = logging.getLogger(__name__)


def _ensure_data_dir() -> Path:
    """Create the data directory and its logs/ folder."""
    data_dir = resolve_data_dir()
    (data_dir / "logs").mkdir(parents=True, exist_ok=True)
    logger.info(f"Data directory: {data_dir}")
    return data_dir


async def _warm_on_startup() -> None:
    service = get_service()
    summary = await warm_cache(service, delay_ms=get_settings().cache.regeneration_delay_ms)
    logger.info(f"Startup warming finished: {summary.success} generated, {summary.failed} failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan handler for startup and shutdown events.

    On startup:
    - Ensures WIKIGEN_DATA_DIR exists
    - Starts background cache warming when enabled

    On shutdown:
    - Cancels warming if it is still running
    """
    _ensure_data_dir()

    warming_task = None
    try:
        warm = get_settings().cache.enable_warming_on_startup
    except (ValueError, OSError, ConfigError) as e:
        logger.warning(f"Settings unavailable, skipping startup warming: {e}")
        warm = False
    if warm:
        warming_task = asyncio.create_task(_warm_on_startup())

    logger.info("wikigen started")

    yield

    if warming_task is not None and not warming_task.done():
        warming_task.cancel()


app = FastAPI(
    title="wikigen",
    description="On-demand wiki generation over a document corpus",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(wiki.router)
app.include_router(cache.router)
app.include_router(graph.router)
