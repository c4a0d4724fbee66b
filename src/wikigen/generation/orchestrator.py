"""Wiki page generation pipeline.

``WikiGenerator.generate`` runs one page through retrieval, quality
assessment, context assembly, optional web augmentation, a single LLM call,
entity linking and confidence scoring. It persists nothing; callers store
the returned ``GeneratedPage``.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from chromadb.errors import ChromaError

from wikigen.constants.cache import DEFAULT_CACHE_TTL_HOURS
from wikigen.constants.confidence import PUBLISH_THRESHOLD
from wikigen.constants.generation import (
    DEDUP_JACCARD_THRESHOLD,
    ESTIMATED_OUTPUT_TOKENS,
    GENERATION_MAX_TOKENS,
    GENERATION_TEMPERATURE,
    INPUT_PRICE_PER_MILLION,
    MAX_CONTEXT_TOKENS,
    MIN_CONTENT_LENGTH,
    MIN_TRUNCATION_TOKENS,
    OUTPUT_PRICE_PER_MILLION,
)
from wikigen.db.clock import Clock, utc_now
from wikigen.errors import ErrorCode, WikiGenerationError
from wikigen.generation.confidence import calculate_confidence, is_publishable
from wikigen.generation.evaluator import ContentEvaluator, EvaluationResult
from wikigen.generation.prompts import (
    build_augmented_context,
    build_system_prompt,
    build_user_message,
)
from wikigen.generation.quality import (
    GenerationMode,
    QualityAssessment,
    QualityThresholds,
    assess_quality,
)
from wikigen.generation.text import (
    extract_title,
    generate_excerpt,
    query_to_slug,
    validate_query,
)
from wikigen.generation.web import WebAugmentationResult, WebAugmenter
from wikigen.links.entities import EntityExtractor, EntityLink, ExtractionOutcome
from wikigen.links.injection import inject_links
from wikigen.llm.client import LLMClient, LLMError, LLMResponse
from wikigen.retrieval.context import AssembledContext, assemble_context, format_context_for_prompt
from wikigen.retrieval.models import Chunk, SearchStats
from wikigen.retrieval.prioritization import should_use_web_augmentation
from wikigen.retrieval.search import RetrievalResult, Retriever, Searcher
from wikigen.retrieval.tokens import estimate_tokens
from wikigen.throttle import RateLimitedScheduler

logger = logging.getLogger(__name__)

# Retrieval failures that fall back to knowledge-only generation
RETRIEVAL_ERRORS = (ChromaError, sqlite3.Error, OSError, ValueError)


@dataclass
class GeneratedPage:
    """A generated page ready to be cached."""

    slug: str
    title: str
    content: str
    excerpt: str
    confidence_score: float
    published: bool
    generated_at: datetime
    ttl_expires_at: datetime
    mode: GenerationMode
    entities: list[EntityLink] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> dict[str, bool]:
        return self.metadata.get("degraded", {})


def _similarity_stats(chunks: list[Chunk]) -> dict[str, float]:
    if not chunks:
        return {"avg_similarity": 0.0, "min_similarity": 0.0, "max_similarity": 0.0}
    sims = [c.similarity for c in chunks]
    return {
        "avg_similarity": round(sum(sims) / len(sims), 4),
        "min_similarity": round(min(sims), 4),
        "max_similarity": round(max(sims), 4),
    }


def estimate_generation_cost(
    context_chars: int, output_tokens: int = ESTIMATED_OUTPUT_TOKENS
) -> dict[str, float]:
    """Rough cost of one generation, from context length alone."""
    input_tokens = estimate_tokens("x" * context_chars) if context_chars else 0
    cost = (
        input_tokens * INPUT_PRICE_PER_MILLION + output_tokens * OUTPUT_PRICE_PER_MILLION
    ) / 1_000_000
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "estimated_cost": round(cost, 6),
    }


class WikiGenerator:
    """Generates wiki pages from the retrieval corpus and an LLM.

    Args:
        llm: Generation client, also used for entity extraction.
        retriever: Search + prioritization + diversification. Without one,
            every page is generated from general knowledge.
        web_augmenter: Optional authoritative web fetcher.
        extract_entities: Whether to extract and inject cross links.
        evaluator: Optional LLM quality evaluator; its score is advisory.
        thresholds: Quality decision table.
        max_context_tokens: Token budget for assembled context.
        publish_threshold: Minimum confidence for a page to be published.
        ttl_hours: Lifetime stamped onto generated pages.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        llm: LLMClient,
        retriever: Optional[Retriever] = None,
        web_augmenter: Optional[WebAugmenter] = None,
        extract_entities: bool = True,
        evaluator: Optional[ContentEvaluator] = None,
        thresholds: Optional[QualityThresholds] = None,
        max_context_tokens: int = MAX_CONTEXT_TOKENS,
        dedup_threshold: float = DEDUP_JACCARD_THRESHOLD,
        min_truncation_tokens: int = MIN_TRUNCATION_TOKENS,
        publish_threshold: float = PUBLISH_THRESHOLD,
        ttl_hours: int = DEFAULT_CACHE_TTL_HOURS,
        clock: Clock = utc_now,
    ):
        self.llm = llm
        self.retriever = retriever
        self.web_augmenter = web_augmenter
        self.entity_extractor = EntityExtractor(llm) if extract_entities else None
        self.evaluator = evaluator
        self.thresholds = thresholds or QualityThresholds()
        self.max_context_tokens = max_context_tokens
        self.dedup_threshold = dedup_threshold
        self.min_truncation_tokens = min_truncation_tokens
        self.publish_threshold = publish_threshold
        self.ttl_hours = ttl_hours
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        llm: LLMClient,
        searcher: Optional[Searcher],
        settings,
        clock: Clock = utc_now,
    ) -> "WikiGenerator":
        web = None
        if settings.web.enabled:
            web = WebAugmenter(
                timeout=settings.web.timeout_seconds,
                max_chars=settings.web.max_chars,
                cache_ttl_seconds=settings.web.cache_ttl_hours * 3600,
            )
        return cls(
            llm,
            retriever=Retriever.from_settings(searcher, settings) if searcher else None,
            web_augmenter=web,
            extract_entities=settings.links.extract_entities,
            evaluator=ContentEvaluator(llm) if settings.confidence.evaluate_content else None,
            thresholds=QualityThresholds.from_settings(settings),
            max_context_tokens=settings.context.max_context_tokens,
            dedup_threshold=settings.context.dedup_threshold,
            min_truncation_tokens=settings.context.min_truncation_tokens,
            publish_threshold=settings.confidence.publish_threshold,
            ttl_hours=settings.cache.ttl_hours,
            clock=clock,
        )

    async def _retrieve(self, query: str) -> tuple[RetrievalResult, Optional[str]]:
        if self.retriever is None:
            return RetrievalResult(), None
        try:
            return await self.retriever.retrieve(query), None
        except RETRIEVAL_ERRORS as e:
            logger.warning(f"Retrieval failed for '{query}', using general knowledge: {e}")
            return RetrievalResult(search_stats=SearchStats()), str(e)

    async def _augment(
        self, query: str, chunks: list[Chunk], context: str
    ) -> tuple[str, Optional[WebAugmentationResult]]:
        if self.web_augmenter is None or not should_use_web_augmentation(chunks, query):
            return context, None
        result = await self.web_augmenter.fetch(query)
        if not result.success_count:
            logger.warning(f"Web augmentation produced nothing for '{query}': {result.error}")
            return context, result
        merged = build_augmented_context(
            context, result.context, result.fetched_at.strftime("%Y-%m-%d")
        )
        return merged, result

    async def _call_llm(self, mode: GenerationMode, query: str, context: str) -> LLMResponse:
        try:
            return await self.llm.generate_with_usage(
                build_user_message(query),
                system_prompt=build_system_prompt(mode, query, context),
                temperature=GENERATION_TEMPERATURE,
                max_tokens=GENERATION_MAX_TOKENS,
            )
        except LLMError as e:
            raise WikiGenerationError(
                ErrorCode.GENERATION_FAILED, f"Failed to generate wiki page: {e}"
            ) from e

    async def _link_entities(self, content: str) -> tuple[str, ExtractionOutcome]:
        if self.entity_extractor is None:
            return content, ExtractionOutcome()
        outcome = await self.entity_extractor.extract(content)
        if outcome.entities:
            content = inject_links(content, outcome.entities)
        return content, outcome

    async def generate(self, query: str, slug: Optional[str] = None) -> GeneratedPage:
        """Generate a page for query.

        Args:
            query: Topic text.
            slug: Keep this slug instead of deriving one from the query.

        Raises:
            WikiGenerationError: INVALID_QUERY for a bad query, GENERATION_FAILED
                when the LLM fails or returns too little content.
        """
        start = time.perf_counter()
        normalized = validate_query(query)
        slug = slug or query_to_slug(normalized)
        logger.info(f"Generating page '{slug}' for query '{normalized}'")

        retrieval, retrieval_error = await self._retrieve(normalized)
        chunks = retrieval.chunks
        quality: QualityAssessment = assess_quality(chunks, self.thresholds)
        mode = quality.mode
        logger.info(f"Quality assessment for '{slug}': {mode.value} ({quality.reason})")

        assembled = AssembledContext()
        context = ""
        web_result: Optional[WebAugmentationResult] = None
        if mode != GenerationMode.KNOWLEDGE_ONLY:
            assembled = assemble_context(
                chunks,
                max_tokens=self.max_context_tokens,
                query=normalized,
                dedup_threshold=self.dedup_threshold,
                min_truncation_tokens=self.min_truncation_tokens,
            )
            if assembled.is_empty:
                logger.info(f"Context assembly for '{slug}' was empty, using general knowledge")
                mode = GenerationMode.KNOWLEDGE_ONLY
            else:
                context = format_context_for_prompt(assembled)
                context, web_result = await self._augment(normalized, chunks, context)

        response = await self._call_llm(mode, normalized, context)
        content = response.content.strip() if response.content else ""
        if len(content) < MIN_CONTENT_LENGTH:
            raise WikiGenerationError(
                ErrorCode.GENERATION_FAILED, "Generated content is too short or empty"
            )

        title = extract_title(content, normalized)
        excerpt = generate_excerpt(content)
        content, extraction = await self._link_entities(content)

        official_ratio = retrieval.prioritization.official_ratio if retrieval.prioritization else 0.0
        confidence = calculate_confidence(
            mode,
            avg_similarity=quality.avg_similarity,
            source_count=quality.unique_source_count,
            content_length=len(content),
            quality_score=quality.quality_score,
            official_ratio=official_ratio,
        )
        published = is_publishable(confidence, self.publish_threshold)

        evaluation: Optional[EvaluationResult] = None
        if self.evaluator is not None:
            evaluation = await self.evaluator.evaluate(normalized, content, assembled.sources)

        sources = list(assembled.sources)
        if web_result is not None:
            sources.extend(web_result.source_labels)

        generation_ms = int((time.perf_counter() - start) * 1000)
        now = self._clock()
        metadata: dict[str, Any] = {
            "query": normalized,
            "generation_mode": mode.value,
            "quality": quality.to_dict(),
            "sources_used": sources,
            "document_ids": list(assembled.document_ids),
            "chunk_count": len(chunks),
            "search_stats": {**retrieval.search_stats.to_dict(), **_similarity_stats(chunks)},
            "prioritization": (
                retrieval.prioritization.to_dict() if retrieval.prioritization else None
            ),
            "context": {
                "tokens_used": assembled.tokens_used,
                "chunks_used": assembled.chunks_used,
                "truncated": assembled.truncated,
            },
            "web_augmentation": (
                {
                    "used": bool(web_result.success_count),
                    "source_count": web_result.success_count,
                    "fetched_at": web_result.fetched_at.isoformat(),
                    "cached": web_result.cached,
                    "error": web_result.error,
                }
                if web_result is not None
                else None
            ),
            "entity_links": [
                {"entity": e.text, "slug": e.slug, "confidence": e.confidence}
                for e in extraction.entities
            ],
            "degraded": {
                "retrieval": retrieval_error is not None,
                "web_augmentation": bool(web_result and web_result.degraded),
                "entity_extraction": extraction.degraded,
                "evaluation": bool(evaluation and evaluation.degraded),
            },
            "errors": {
                key: value
                for key, value in (
                    ("retrieval", retrieval_error),
                    ("web_augmentation", web_result.error if web_result else None),
                    ("entity_extraction", extraction.error),
                )
                if value
            },
            "token_usage": {
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
                "estimated_cost": round(
                    (
                        response.input_tokens * INPUT_PRICE_PER_MILLION
                        + response.output_tokens * OUTPUT_PRICE_PER_MILLION
                    )
                    / 1_000_000,
                    6,
                ),
            },
            "model": response.model,
            "generation_time_ms": generation_ms,
            "evaluation": evaluation.to_dict() if evaluation else None,
        }

        logger.info(
            f"Generated '{slug}' in {generation_ms}ms: mode={mode.value}, "
            f"confidence={confidence:.2f}, published={published}, "
            f"tokens={response.total_tokens}"
        )
        return GeneratedPage(
            slug=slug,
            title=title,
            content=content,
            excerpt=excerpt,
            confidence_score=confidence,
            published=published,
            generated_at=now,
            ttl_expires_at=now + timedelta(hours=self.ttl_hours),
            mode=mode,
            entities=extraction.entities,
            metadata=metadata,
        )

    async def regenerate(self, slug: str, query: str) -> GeneratedPage:
        """Generate again for an existing page, keeping its slug."""
        return await self.generate(query, slug=slug)

    async def batch_generate(
        self, queries: list[str], scheduler: Optional[RateLimitedScheduler] = None
    ) -> tuple[list[GeneratedPage], list[dict[str, str]]]:
        """Generate several pages through a scheduler.

        Returns:
            (pages, errors) where errors has one entry per failed query.
        """
        scheduler = scheduler or RateLimitedScheduler()
        outcomes = await scheduler.run_all(
            [lambda q=query: self.generate(q) for query in queries]
        )
        pages: list[GeneratedPage] = []
        errors: list[dict[str, str]] = []
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, WikiGenerationError):
                logger.error(f"Batch generation failed for '{query}': {outcome}")
                errors.append({"query": query, "code": outcome.code.value, "error": outcome.message})
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                pages.append(outcome)
        logger.info(f"Batch complete: {len(pages)}/{len(queries)} succeeded")
        return pages, errors
