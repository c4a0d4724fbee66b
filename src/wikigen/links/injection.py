"""Markdown link injection for extracted entities."""

import logging
import re
from dataclasses import dataclass

from wikigen.constants.links import WIKI_LINK_PREFIX
from wikigen.links.entities import EntityLink

logger = logging.getLogger(__name__)

_WIKI_LINK_RE = re.compile(r"\[([^\]]+)\]\(" + re.escape(WIKI_LINK_PREFIX) + r"([^)\s]+)\)")


def is_already_linked(content: str, start: int, end: int) -> bool:
    """Whether the span sits inside the text of an existing markdown link.

    Scans back for an opening bracket (stopping at a closing one), then
    forward for the matching closing bracket followed by "(" or "[".
    """
    open_bracket = -1
    for i in range(start - 1, -1, -1):
        if content[i] == "[":
            open_bracket = i
            break
        if content[i] == "]":
            break

    if open_bracket == -1:
        return False

    for i in range(end, len(content)):
        if content[i] == "]":
            return content[i + 1 : i + 2] in ("(", "[")
        if content[i] == "[":
            break
    return False


def make_link(text: str, slug: str) -> str:
    return f"[{text}]({WIKI_LINK_PREFIX}{slug})"


def inject_links(content: str, entities: list[EntityLink]) -> str:
    """Replace the first occurrence of each entity with a wiki link.

    Entities are applied from the end of the content backwards so earlier
    offsets stay valid. An entity is skipped when its text was already
    linked, its span is already inside a link, or the text at its offset no
    longer matches.
    """
    linked = content
    linked_texts: set[str] = set()

    for entity in sorted(entities, key=lambda e: e.start, reverse=True):
        key = entity.text.lower()
        if key in linked_texts:
            continue
        if entity.start < 0 or entity.end <= entity.start or entity.end > len(linked):
            logger.debug(f"Skipping entity with invalid position: {entity.text}")
            continue
        if is_already_linked(linked, entity.start, entity.end):
            continue
        original = linked[entity.start : entity.end]
        if original.lower() != key:
            logger.debug(f"Text mismatch for '{entity.text}' at {entity.start}: '{original}'")
            continue

        # Keep the page's own casing for the visible link text
        linked = linked[: entity.start] + make_link(original, entity.slug) + linked[entity.end :]
        linked_texts.add(key)

    return linked


def extract_links(content: str) -> list[tuple[str, str]]:
    """(text, slug) pairs for every wiki link in the content."""
    return [(m.group(1), m.group(2)) for m in _WIKI_LINK_RE.finditer(content)]


def strip_wiki_links(content: str) -> str:
    """Replace wiki links with their plain text."""
    return _WIKI_LINK_RE.sub(r"\1", content)


def get_link_class(entity: EntityLink, existing_pages: set[str]) -> str:
    """Display class: strong when the target exists, else by confidence."""
    if entity.slug in existing_pages:
        return "wiki-link-strong"
    if entity.confidence == "strong":
        return "wiki-link-medium"
    if entity.confidence == "medium":
        return "wiki-link-weak"
    return "wiki-link-ghost"


@dataclass
class LinkPreview:
    entity: EntityLink
    link_class: str
    would_link: bool


def preview_links(
    content: str, entities: list[EntityLink], existing_pages: set[str]
) -> list[LinkPreview]:
    """Describe what ``inject_links`` would do without changing the content."""
    previews = []
    seen: set[str] = set()
    for entity in entities:
        key = entity.text.lower()
        inside = entity.start >= 0 and is_already_linked(content, entity.start, entity.end)
        previews.append(
            LinkPreview(
                entity=entity,
                link_class=get_link_class(entity, existing_pages),
                would_link=entity.start >= 0 and key not in seen and not inside,
            )
        )
        seen.add(key)
    return previews
