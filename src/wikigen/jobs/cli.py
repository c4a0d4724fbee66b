"""Command line entry point for background jobs.

Usage::

    wikigen-jobs regenerate-stale --max-pages 20 --dry-run
    wikigen-jobs warm-cache --topics-file topics.yaml --delay-ms 2000

Each command prints a JSON summary on stdout. The exit status is 1 when a
live run had any failure or the job could not start, otherwise 0.
"""

import argparse
import asyncio
import json
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Optional, Sequence

from chromadb.errors import ChromaError

from wikigen.config import ConfigError, load_settings
from wikigen.constants.cache import DEFAULT_REGEN_BATCH_SIZE
from wikigen.db.connection import Database
from wikigen.db.migrations import run_migrations
from wikigen.jobs.regenerate import regenerate_stale
from wikigen.jobs.warm import TopicsFileError, load_topics, warm_cache
from wikigen.llm.client import create_llm_client
from wikigen.service import WikiService, build_service
from wikigen.throttle import GenerationController
from wikigen.vectorstore.store import VectorStore

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


def default_max_pages() -> int:
    """Pages per regeneration run: the [cache] regeneration_batch_size setting."""
    try:
        return load_settings().cache.regeneration_batch_size
    except (ValueError, OSError, ConfigError):
        # Settings not available (e.g., invalid WIKI_* variables in tests)
        return DEFAULT_REGEN_BATCH_SIZE


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wikigen-jobs", description="Background maintenance for the wiki page cache."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    max_pages = default_max_pages()
    regen = subparsers.add_parser(
        "regenerate-stale", help="Regenerate expired pages, most viewed first"
    )
    regen.add_argument(
        "--max-pages",
        type=int,
        default=max_pages,
        help=f"Pages to regenerate (default {max_pages})",
    )
    regen.add_argument(
        "--dry-run", action="store_true", help="List stale pages without regenerating"
    )
    regen.add_argument(
        "--delay-ms", type=int, default=None, help="Minimum spacing between generations"
    )

    warm = subparsers.add_parser("warm-cache", help="Pregenerate popular topics")
    warm.add_argument(
        "--topics-file", type=Path, default=None, help="YAML list of topics to warm"
    )
    warm.add_argument(
        "--no-skip-existing",
        dest="skip_existing",
        action="store_false",
        help="Regenerate topics that already have a page",
    )
    warm.add_argument(
        "--delay-ms", type=int, default=None, help="Minimum spacing between generations"
    )
    warm.add_argument("--max-topics", type=int, default=None, help="Warm at most this many")
    return parser


def create_service() -> tuple[WikiService, Database]:
    """Build a service from settings for a one-shot job."""
    settings = load_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(settings.db_path)
    run_migrations(db)
    vectorstore = VectorStore(settings.chroma_path)
    service = build_service(
        settings,
        db,
        create_llm_client(settings),
        vectorstore,
        GenerationController.from_settings(),
    )
    return service, db


async def _run(
    args: argparse.Namespace, service: WikiService, topics: Optional[list[str]] = None
) -> tuple[dict, int]:
    settings = load_settings()
    delay_ms = args.delay_ms if args.delay_ms is not None else settings.cache.regeneration_delay_ms

    if args.command == "regenerate-stale":
        summary = await regenerate_stale(
            service, max_pages=args.max_pages, dry_run=args.dry_run, delay_ms=delay_ms
        )
        return summary.to_dict(), summary.exit_code

    warming = await warm_cache(
        service,
        topics=topics,
        skip_existing=args.skip_existing,
        delay_ms=delay_ms,
        max_topics=args.max_topics,
    )
    return warming.to_dict(), 1 if warming.failed else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    topics = None
    if args.command == "warm-cache" and args.topics_file is not None:
        try:
            topics = load_topics(args.topics_file)
        except (TopicsFileError, OSError) as e:
            logger.error(f"Could not read topics: {e}")
            return 1

    try:
        service, db = create_service()
    except (ConfigError, OSError, sqlite3.Error, ChromaError) as e:
        logger.error(f"Could not start {args.command}: {e}")
        return 1

    try:
        summary, exit_code = asyncio.run(_run(args, service, topics))
    except sqlite3.Error as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        db.close()

    counts = {key: value for key, value in summary.items() if key != "results"}
    logger.info(f"{args.command} summary: {json.dumps(counts)}")
    print(json.dumps(summary, indent=2))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
