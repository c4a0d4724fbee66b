"""Query validation, slugs, titles and excerpts."""

import re

from wikigen.constants.generation import (
    EXCERPT_LENGTH,
    MAX_QUERY_LENGTH,
    MIN_QUERY_LENGTH,
    QUERY_PATTERN,
)
from wikigen.errors import ErrorCode, WikiGenerationError

_QUERY_RE = re.compile(QUERY_PATTERN)
_HEADING_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def validate_query(query: str | None) -> str:
    """Return the stripped query or raise INVALID_QUERY."""
    if query is None or not query.strip():
        raise WikiGenerationError(ErrorCode.INVALID_QUERY, "Query must not be empty")
    cleaned = query.strip()
    if len(cleaned) < MIN_QUERY_LENGTH:
        raise WikiGenerationError(
            ErrorCode.INVALID_QUERY,
            f"Query must be at least {MIN_QUERY_LENGTH} characters",
        )
    if len(cleaned) > MAX_QUERY_LENGTH:
        raise WikiGenerationError(
            ErrorCode.INVALID_QUERY,
            f"Query must be at most {MAX_QUERY_LENGTH} characters",
        )
    if not _QUERY_RE.match(cleaned):
        raise WikiGenerationError(ErrorCode.INVALID_QUERY, "Query contains invalid characters")
    return cleaned


def query_to_slug(query: str) -> str:
    """Normalize free text into a URL slug.

    >>> query_to_slug("  Swaddling  Techniques! ")
    'swaddling-techniques'
    """
    slug = query.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", " ", slug).strip()
    slug = slug.replace(" ", "-")
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def slug_to_title(slug: str) -> str:
    return " ".join(word.capitalize() for word in slug.split("-") if word)


def extract_title(content: str, fallback: str) -> str:
    """First level-one markdown heading, or the fallback."""
    match = _HEADING_RE.search(content)
    if match:
        return match.group(1).strip()
    return fallback


def strip_markdown(content: str) -> str:
    text = re.sub(r"```.*?```", " ", content, flags=re.DOTALL)
    text = re.sub(r"^#+\s+.*$", " ", text, flags=re.MULTILINE)
    text = re.sub(r"!\[[^\]]*\]\([^)]*\)", " ", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"[*_`>]+", "", text)
    text = re.sub(r"^\s*[-+]\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"^\s*\d+\.\s+", "", text, flags=re.MULTILINE)
    return re.sub(r"\s+", " ", text).strip()


def generate_excerpt(content: str, max_length: int = EXCERPT_LENGTH) -> str:
    """Plain-text preview of the page cut at a word boundary."""
    text = strip_markdown(content)
    if len(text) <= max_length:
        return text
    cut = text[:max_length]
    last_space = cut.rfind(" ")
    if last_space > 0:
        cut = cut[:last_space]
    return cut.rstrip(" ,.;:") + "..."
