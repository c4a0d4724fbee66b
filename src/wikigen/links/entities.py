"""Entity extraction for cross-linking wiki pages.

The LLM proposes linkable concepts; everything after that is deterministic:
slugs, positions and context excerpts are computed here, and candidates that
do not appear in the page or are too generic are dropped.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from wikigen.constants.links import (
    ENTITY_CONFIDENCE_RANK,
    ENTITY_CONTENT_LIMIT,
    ENTITY_EXTRACTION_MAX_TOKENS,
    ENTITY_EXTRACTION_TEMPERATURE,
    GENERIC_TERMS,
    MAX_ENTITY_CONTEXT,
    MIN_ENTITY_LENGTH,
    MIN_ENTITY_SLUG_LENGTH,
)
from wikigen.generation.evaluator import strip_code_fences
from wikigen.generation.prompts import build_entity_extraction_prompt
from wikigen.generation.text import query_to_slug
from wikigen.llm.client import LLMClient, LLMError

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert at identifying concepts and topics that should be linked in a wiki."
)
CONFIDENCE_LEVELS = ("strong", "medium", "weak", "ghost")
SENTENCE_BREAKS = (". ", "! ", "? ", "\n\n")


@dataclass
class EntityLink:
    """A linkable concept found in page content.

    Attributes:
        text: Text as proposed by the extractor.
        slug: Normalized page slug for the concept.
        confidence: strong, medium, weak or ghost.
        context: Sentence around the first occurrence (<= 200 chars).
        start: Offset of the first case-insensitive occurrence.
        end: ``start + len(text)``.
    """

    text: str
    slug: str
    confidence: str
    context: str = ""
    start: int = -1
    end: int = -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "slug": self.slug,
            "confidence": self.confidence,
            "context": self.context,
            "start": self.start,
            "end": self.end,
        }


@dataclass
class ExtractionOutcome:
    """Entities plus whether extraction failed and why."""

    entities: list[EntityLink] = field(default_factory=list)
    degraded: bool = False
    error: str | None = None


def find_entity_position(content: str, text: str) -> tuple[int, int]:
    """First case-insensitive occurrence of text, or (-1, -1)."""
    start = content.lower().find(text.lower())
    if start == -1:
        return -1, -1
    return start, start + len(text)


def extract_context(content: str, start: int, end: int) -> str:
    """Sentence containing the span, bounded to MAX_ENTITY_CONTEXT characters."""
    if start < 0:
        return ""
    before = content[:start]
    after = content[end:]

    sentence_start = max(
        [before.rfind(b) + len(b) for b in SENTENCE_BREAKS if before.rfind(b) != -1] + [0]
    )
    ends = [after.find(b) for b in SENTENCE_BREAKS if after.find(b) != -1]
    if ends:
        sentence_end = end + min(ends) + 1
    else:
        sentence_end = end + min(len(after), 100)

    context = content[sentence_start:sentence_end].strip()
    if len(context) > MAX_ENTITY_CONTEXT:
        return context[: MAX_ENTITY_CONTEXT - 3] + "..."
    return context


def validate_entity(entity: EntityLink) -> bool:
    """Reject short, generic or unsluggable entities."""
    if not entity.text or len(entity.text) < MIN_ENTITY_LENGTH:
        return False
    if not entity.slug or len(entity.slug) < MIN_ENTITY_SLUG_LENGTH:
        return False
    return entity.text.lower() not in GENERIC_TERMS


def parse_raw_entities(response: str) -> list[dict[str, Any]]:
    """Decode the extractor's JSON array.

    Raises:
        ValueError: If the response is not a JSON array.
    """
    parsed = json.loads(strip_code_fences(response))
    if not isinstance(parsed, list):
        raise ValueError("Entity extraction response is not a JSON array")
    return [item for item in parsed if isinstance(item, dict)]


def build_entities(content: str, raw_entities: list[dict[str, Any]]) -> list[EntityLink]:
    """Turn raw extractor output into positioned, validated entities."""
    entities: list[EntityLink] = []
    seen_slugs: set[str] = set()

    for raw in raw_entities:
        text = raw.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        text = text.strip()
        slug = query_to_slug(text)
        if slug in seen_slugs:
            continue

        confidence = raw.get("confidence")
        if confidence not in CONFIDENCE_LEVELS:
            confidence = "medium"

        start, end = find_entity_position(content, text)
        entity = EntityLink(
            text=text,
            slug=slug,
            confidence=confidence,
            context=extract_context(content, start, end),
            start=start,
            end=end,
        )
        if start < 0 or not validate_entity(entity):
            continue
        entities.append(entity)
        seen_slugs.add(slug)

    entities.sort(key=lambda e: e.start)
    return entities


class EntityExtractor:
    """LLM-backed extractor of linkable concepts."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def extract(self, content: str) -> ExtractionOutcome:
        """Extract entities; failures yield an empty, degraded outcome."""
        if not content or not content.strip():
            return ExtractionOutcome()

        prompt = build_entity_extraction_prompt(content[:ENTITY_CONTENT_LIMIT])
        try:
            response = await self.llm.generate_with_json(
                prompt,
                system_prompt=EXTRACTION_SYSTEM_PROMPT,
                temperature=ENTITY_EXTRACTION_TEMPERATURE,
                max_tokens=ENTITY_EXTRACTION_MAX_TOKENS,
            )
            raw = parse_raw_entities(response)
        except (LLMError, ValueError) as e:
            logger.warning(f"Entity extraction failed: {e}")
            return ExtractionOutcome(degraded=True, error=str(e))

        entities = build_entities(content, raw)
        logger.info(f"Extracted {len(entities)} entities ({len(raw)} proposed)")
        return ExtractionOutcome(entities=entities)


def filter_by_confidence(entities: list[EntityLink], min_confidence: str = "medium") -> list[EntityLink]:
    threshold = ENTITY_CONFIDENCE_RANK[min_confidence]
    return [e for e in entities if ENTITY_CONFIDENCE_RANK.get(e.confidence, 0) >= threshold]


def group_by_confidence(entities: list[EntityLink]) -> dict[str, list[EntityLink]]:
    grouped: dict[str, list[EntityLink]] = {level: [] for level in CONFIDENCE_LEVELS}
    for entity in entities:
        grouped[entity.confidence].append(entity)
    return grouped


def get_entity_stats(entities: list[EntityLink]) -> dict[str, Any]:
    by_confidence = Counter({level: 0 for level in CONFIDENCE_LEVELS})
    by_confidence.update(e.confidence for e in entities)
    return {
        "total": len(entities),
        "by_confidence": dict(by_confidence),
        "unique_slugs": len({e.slug for e in entities}),
        "with_context": sum(1 for e in entities if e.context),
    }
