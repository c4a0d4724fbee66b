"""Cache warming job with a YAML topic list."""

import logging
from pathlib import Path
from typing import Optional

import yaml

from wikigen.cache.warming import CacheWarmer, WarmingSummary, validate_warming_config
from wikigen.constants.cache import DEFAULT_REGEN_DELAY_MS
from wikigen.service import WikiService

logger = logging.getLogger(__name__)


class TopicsFileError(ValueError):
    """The topics file could not be parsed into a list of topics."""


def load_topics(path: Path) -> list[str]:
    """Read topics from YAML.

    Accepts either a bare list or a mapping with a ``topics`` list::

        topics:
          - swaddling techniques
          - colic

    Raises:
        TopicsFileError: The file is not valid YAML or has the wrong shape.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise TopicsFileError(f"Invalid YAML in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("topics")
    if not isinstance(data, list):
        raise TopicsFileError(f"{path} must contain a list of topics")

    topics = [str(item).strip() for item in data if item is not None and str(item).strip()]
    if not topics:
        raise TopicsFileError(f"{path} contains no topics")
    return topics


async def warm_cache(
    service: WikiService,
    topics: Optional[list[str]] = None,
    skip_existing: bool = True,
    delay_ms: int = DEFAULT_REGEN_DELAY_MS,
    max_topics: Optional[int] = None,
) -> WarmingSummary:
    _, issues = validate_warming_config(topics, delay_ms)
    for issue in issues:
        logger.warning(f"Warming config: {issue}")

    warmer = CacheWarmer(service.pages, service.generate_and_store)
    return await warmer.warm(
        topics=topics,
        skip_existing=skip_existing,
        delay_ms=delay_ms,
        max_topics=max_topics,
    )
