"""Page service: cache lookup, guarded generation and persistence.

``WikiService`` wires the generator to the page store and link graph. A
request first checks the cache; on a miss it generates through the
``GenerationController`` (dedup, rate limit, cooldown), stores the page,
records link candidates and graph edges, then prunes the cache to capacity.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from wikigen.cache.invalidation import CacheInvalidator
from wikigen.cache.monitoring import CacheMonitor
from wikigen.cache.pages import Page, PageStore
from wikigen.config import Config
from wikigen.constants.cache import DEFAULT_MAX_CACHED_PAGES
from wikigen.db.connection import Database
from wikigen.errors import PageNotFoundError
from wikigen.generation.orchestrator import GeneratedPage, WikiGenerator
from wikigen.generation.text import query_to_slug, validate_query
from wikigen.links.candidates import LinkCandidateStore, candidate_tier
from wikigen.links.graph import PageGraph
from wikigen.llm.client import LLMClient
from wikigen.retrieval.search import ChunkSearcher
from wikigen.throttle import GenerationController
from wikigen.vectorstore.store import VectorStore

logger = logging.getLogger(__name__)

ANONYMOUS_CALLER = "anonymous"


@dataclass
class PageResult:
    page: Page
    cached: bool
    stale: bool = False


def slug_to_query(slug: str) -> str:
    return slug.replace("-", " ").strip()


class WikiService:
    """Single entry point for reading, generating and regenerating pages."""

    def __init__(
        self,
        generator: WikiGenerator,
        pages: PageStore,
        candidates: LinkCandidateStore,
        graph: PageGraph,
        controller: Optional[GenerationController] = None,
        max_pages: int = DEFAULT_MAX_CACHED_PAGES,
    ):
        self.generator = generator
        self.pages = pages
        self.candidates = candidates
        self.graph = graph
        self.controller = controller or GenerationController()
        self.max_pages = max_pages
        self.invalidator = CacheInvalidator(pages, graph, candidates)

    def _store(self, generated: GeneratedPage, regenerated: bool = False) -> Page:
        page = self.pages.upsert_page(
            slug=generated.slug,
            title=generated.title,
            content=generated.content,
            excerpt=generated.excerpt,
            confidence_score=generated.confidence_score,
            published=generated.published,
            metadata=generated.metadata,
        )
        if regenerated:
            page = self.pages.mark_regenerated(generated.slug) or page

        mentions = [
            (e.text, e.slug, candidate_tier(e.confidence))
            for e in generated.entities
            if e.slug != generated.slug
        ]
        self.candidates.record_page_mentions(generated.slug, mentions)
        self.graph.record_entity_links(generated.slug, generated.entities)
        self.candidates.mark_page_exists(generated.slug)

        logger.info(
            f"Stored page '{generated.slug}' (confidence {generated.confidence_score:.2f}, "
            f"published={generated.published}, {len(mentions)} link candidates)"
        )

        pruned_slugs = self.pages.prune_to_capacity(self.max_pages)
        for pruned in pruned_slugs:
            self.graph.delete_page_connections(pruned)
            self.candidates.mark_page_exists(pruned, exists=False)
        if pruned_slugs:
            logger.info(f"Pruned {len(pruned_slugs)} pages to stay within {self.max_pages}")

        return page

    async def _generate_and_store(
        self, query: str, slug: str, regenerated: bool = False
    ) -> Page:
        if regenerated:
            generated = await self.generator.regenerate(slug, query)
        else:
            generated = await self.generator.generate(query, slug=slug)
        return self._store(generated, regenerated=regenerated)

    async def get_or_generate(
        self,
        slug: str,
        query: Optional[str] = None,
        caller_id: str = ANONYMOUS_CALLER,
    ) -> PageResult:
        """Serve the cached page for slug, generating it on a miss.

        Stale pages are still served; background regeneration refreshes them.
        The slug is normalized first, so "Swaddling-Techniques" and
        "swaddling-techniques" name the same page.

        Raises:
            WikiGenerationError: Generation was rejected or failed.
        """
        slug = query_to_slug(slug)
        cached = self.pages.get_page(slug)
        if cached is not None:
            self.pages.increment_view_count(slug)
            return PageResult(page=cached, cached=True, stale=self.pages.is_page_stale(cached))

        topic = validate_query(query or slug_to_query(slug))
        page = await self.controller.run(
            slug, caller_id, lambda: self._generate_and_store(topic, slug)
        )
        return PageResult(page=page, cached=False)

    async def generate(
        self, query: str, caller_id: str = ANONYMOUS_CALLER, force: bool = False
    ) -> PageResult:
        """Generate the page for a free-text query.

        Unless ``force`` is set, an existing published page is returned.
        """
        topic = validate_query(query)
        slug = query_to_slug(topic)
        if not force:
            cached = self.pages.get_page(slug)
            if cached is not None:
                return PageResult(page=cached, cached=True, stale=self.pages.is_page_stale(cached))
        page = await self.controller.run(
            slug, caller_id, lambda: self._generate_and_store(topic, slug)
        )
        return PageResult(page=page, cached=False)

    def _query_for(self, slug: str, query: Optional[str]) -> str:
        if query:
            return validate_query(query)
        existing = self.pages.fetch(slug)
        if existing is None:
            raise PageNotFoundError(slug)
        return validate_query(existing.metadata.get("query") or slug_to_query(slug))

    async def regenerate(
        self, slug: str, caller_id: str = ANONYMOUS_CALLER, query: Optional[str] = None
    ) -> Page:
        """Regenerate an existing page under its original slug.

        Raises:
            PageNotFoundError: No page exists and no query was given.
            CooldownActiveError: The page was generated too recently.
            RateLimitedError: The caller exceeded its window.
        """
        slug = query_to_slug(slug)
        topic = self._query_for(slug, query)
        return await self.controller.run(
            slug, caller_id, lambda: self._generate_and_store(topic, slug, regenerated=True)
        )

    async def generate_and_store(
        self, query: str, slug: Optional[str] = None, regenerated: bool = False
    ) -> Page:
        """Generate and persist without rate limiting or cooldown.

        Used by background jobs, which pace themselves with a scheduler.
        Concurrent requests for the same slug are still deduplicated.
        """
        topic = validate_query(query)
        slug = slug or query_to_slug(topic)
        return await self.controller.in_flight.run(
            slug, lambda: self._generate_and_store(topic, slug, regenerated=regenerated)
        )

    async def regenerate_page(self, slug: str) -> Page:
        """Background regeneration of a cached page."""
        return await self.generate_and_store(
            self._query_for(slug, None), slug=slug, regenerated=True
        )


def build_service(
    settings: Config,
    db: Database,
    llm: LLMClient,
    vectorstore: Optional[VectorStore],
    controller: Optional[GenerationController] = None,
) -> WikiService:
    """Wire a WikiService from settings and shared resources.

    Without a vector store every page is generated from general knowledge.
    """
    searcher = ChunkSearcher(vectorstore) if vectorstore is not None else None
    pages = PageStore(
        db,
        ttl_hours=settings.cache.ttl_hours,
        low_confidence_threshold=settings.cache.low_confidence_threshold,
        popular_threshold=settings.cache.popular_threshold,
        monitor=CacheMonitor(enabled=settings.cache.enable_analytics),
    )
    return WikiService(
        generator=WikiGenerator.from_settings(llm, searcher, settings),
        pages=pages,
        candidates=LinkCandidateStore(db),
        graph=PageGraph(db),
        controller=controller,
        max_pages=settings.cache.max_pages,
    )
