"""Authoritative web augmentation.

When retrieval finds no official source for a health-related query, a few
official health sites are fetched and their text is added to the prompt
context. Fetching is best effort: failures are reported on the result and
never raised into the generator.
"""

import asyncio
import html as html_lib
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import quote_plus

import httpx

from wikigen.constants.retrieval import (
    AUTHORITATIVE_DOMAINS,
    WEB_CACHE_TTL_HOURS,
    WEB_FETCH_TIMEOUT_SECONDS,
    WEB_MAX_CHARS_PER_SOURCE,
    WEB_USER_AGENT,
)

logger = logging.getLogger(__name__)

MIN_EXTRACTED_CHARS = 100

NHS_TOPIC_PATHS = {
    "pregnancy": "/pregnancy/",
    "labour": "/pregnancy/labour-and-birth/",
    "birth": "/pregnancy/labour-and-birth/",
    "antenatal": "/pregnancy/your-pregnancy-care/",
    "prenatal": "/pregnancy/your-pregnancy-care/",
    "breastfeeding": "/conditions/baby/breastfeeding-and-bottle-feeding/",
    "bottle feeding": "/conditions/baby/breastfeeding-and-bottle-feeding/",
    "weaning": "/conditions/baby/weaning-and-feeding/",
    "solid foods": "/conditions/baby/weaning-and-feeding/",
    "colic": "/conditions/colic/",
    "reflux": "/conditions/reflux-in-babies/",
    "jaundice": "/conditions/jaundice-newborn/",
    "teething": "/conditions/baby/teething/",
    "fever": "/conditions/fever-in-children/",
    "rash": "/conditions/rashes-babies-and-children/",
    "milestones": "/conditions/baby/development/",
    "development": "/conditions/baby/development/",
    "sids": "/conditions/sudden-infant-death-syndrome-sids/",
    "safe sleep": "/conditions/sudden-infant-death-syndrome-sids/",
    "vaccination": "/conditions/vaccinations/",
    "vaccine": "/conditions/vaccinations/",
    "immunisation": "/conditions/vaccinations/",
    "newborn": "/conditions/baby/",
    "baby": "/conditions/baby/",
}

CDC_TOPIC_PATHS = {
    "milestones": "/ncbddd/actearly/milestones/",
    "development": "/ncbddd/actearly/milestones/",
    "vaccination": "/vaccines/schedules/",
    "vaccine": "/vaccines/schedules/",
    "safe sleep": "/sids/",
    "sids": "/sids/",
    "breastfeeding": "/breastfeeding/",
}

WHO_TOPIC_URLS = [
    (
        ("breastfeeding", "infant feeding"),
        "https://www.who.int/news-room/fact-sheets/detail/infant-and-young-child-feeding",
    ),
    (
        ("vaccination", "vaccine", "immunisation"),
        "https://www.who.int/news-room/fact-sheets/detail/immunization-coverage",
    ),
    (("development", "growth"), "https://www.who.int/tools/child-growth-standards"),
]

DOMAIN_LABELS = {
    "nhs.uk": "NHS (nhs.uk)",
    "cdc.gov": "CDC (cdc.gov)",
    "who.int": "WHO (who.int)",
}


def _match_path(query: str, patterns: dict[str, str]) -> str | None:
    lower = query.lower()
    for pattern, path in patterns.items():
        if pattern in lower:
            return path
    return None


def build_source_url(domain: str, query: str) -> str | None:
    """URL to fetch for a domain: a known topic page, else the site search."""
    lower = query.lower()
    if domain == "nhs.uk":
        path = _match_path(query, NHS_TOPIC_PATHS)
        if path:
            return f"https://www.nhs.uk{path}"
        return f"https://www.nhs.uk/search/results?q={quote_plus(query)}"
    if domain == "cdc.gov":
        path = _match_path(query, CDC_TOPIC_PATHS)
        if path:
            return f"https://www.cdc.gov{path}"
        return f"https://search.cdc.gov/search/?query={quote_plus(query)}&affiliate=cdc-main"
    if domain == "who.int":
        for keywords, url in WHO_TOPIC_URLS:
            if any(k in lower for k in keywords):
                return url
        return f"https://www.who.int/search?query={quote_plus(query)}"
    return None


_STRIP_BLOCKS = re.compile(
    r"<(script|style|nav|footer|header)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL
)


def extract_text_from_html(markup: str) -> str:
    """Readable text of a page, preferring its <main> or <article> element."""
    text = _STRIP_BLOCKS.sub(" ", markup)
    text = re.sub(r"<!--.*?-->", " ", text, flags=re.DOTALL)

    for tag in ("main", "article"):
        match = re.search(rf"<{tag}[^>]*>(.*?)</{tag}>", text, re.IGNORECASE | re.DOTALL)
        if match:
            text = match.group(1)
            break

    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|h[1-6])>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</li>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_lib.unescape(text)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_page_title(markup: str) -> str:
    match = re.search(r"<title[^>]*>([^<]+)</title>", markup, re.IGNORECASE)
    if match:
        return re.sub(r"\s*[-|]\s*NHS.*$", "", html_lib.unescape(match.group(1)), flags=re.I).strip()
    match = re.search(r"<h1[^>]*>([^<]+)</h1>", markup, re.IGNORECASE)
    if match:
        return html_lib.unescape(match.group(1)).strip()
    return "Untitled"


@dataclass
class WebSource:
    domain: str
    url: str
    title: str = ""
    content: str = ""
    success: bool = False
    error: str | None = None


@dataclass
class WebAugmentationResult:
    """Combined fetched text plus per-source outcomes.

    ``degraded`` is True when augmentation was attempted and produced nothing
    usable; ``error`` summarises why.
    """

    context: str = ""
    sources: list[WebSource] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fetch_time_ms: int = 0
    cached: bool = False
    degraded: bool = False
    error: str | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for s in self.sources if s.success)

    @property
    def source_labels(self) -> list[str]:
        return [f"{s.domain}: {s.title}" for s in self.sources if s.success]


class WebAugmenter:
    """Fetches authoritative pages with a time-bounded in-memory cache.

    Args:
        client: Shared httpx client. A short-lived client is created per
            fetch when omitted.
        domains: Domains to fetch, in order.
        timeout: Per-request timeout in seconds.
        max_chars: Characters kept from each page.
        cache_ttl_seconds: Lifetime of cached results.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        domains: list[str] | None = None,
        timeout: float = WEB_FETCH_TIMEOUT_SECONDS,
        max_chars: int = WEB_MAX_CHARS_PER_SOURCE,
        cache_ttl_seconds: float = WEB_CACHE_TTL_HOURS * 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.domains = list(domains or AUTHORITATIVE_DOMAINS)
        self.timeout = timeout
        self.max_chars = max_chars
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, WebAugmentationResult]] = {}

    @staticmethod
    def cache_key(query: str, domains: list[str]) -> str:
        return f"{query.lower().strip()}-{','.join(sorted(domains))}"

    async def _fetch_source(self, client: httpx.AsyncClient, domain: str, url: str) -> WebSource:
        label = DOMAIN_LABELS.get(domain, domain)
        try:
            response = await client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            return WebSource(domain=label, url=url, error=f"{type(e).__name__}: {e}")

        if not response.is_success:
            return WebSource(domain=label, url=url, error=f"HTTP {response.status_code}")

        markup = response.text
        content = extract_text_from_html(markup)
        if len(content) > self.max_chars:
            content = content[: self.max_chars] + "..."
        if len(content) < MIN_EXTRACTED_CHARS:
            return WebSource(
                domain=label,
                url=url,
                title=extract_page_title(markup),
                error="Insufficient content extracted",
            )
        return WebSource(
            domain=label,
            url=url,
            title=extract_page_title(markup),
            content=content,
            success=True,
        )

    async def _fetch_all(self, client: httpx.AsyncClient, query: str) -> list[WebSource]:
        targets = [(d, build_source_url(d, query)) for d in self.domains]
        return list(
            await asyncio.gather(
                *(self._fetch_source(client, domain, url) for domain, url in targets if url)
            )
        )

    async def fetch(self, query: str) -> WebAugmentationResult:
        """Fetch authoritative text for the query, using the cache when fresh."""
        key = self.cache_key(query, self.domains)
        now = self._clock()
        cached = self._cache.get(key)
        if cached and now - cached[0] < self.cache_ttl_seconds:
            logger.info(f"Web augmentation cache hit for '{query}'")
            result = cached[1]
            return WebAugmentationResult(
                context=result.context,
                sources=result.sources,
                fetched_at=result.fetched_at,
                fetch_time_ms=result.fetch_time_ms,
                cached=True,
                degraded=result.degraded,
                error=result.error,
            )

        start = time.perf_counter()
        if self._client is not None:
            sources = await self._fetch_all(self._client, query)
        else:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={
                    "User-Agent": WEB_USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml",
                    "Accept-Language": "en-GB,en;q=0.9",
                },
            ) as client:
                sources = await self._fetch_all(client, query)

        successful = [s for s in sources if s.success]
        context = "\n\n".join(f"--- {s.domain}: {s.title} ---\n{s.content}" for s in successful)
        errors = [f"{s.domain}: {s.error}" for s in sources if not s.success]
        result = WebAugmentationResult(
            context=context,
            sources=sources,
            fetch_time_ms=int((time.perf_counter() - start) * 1000),
            degraded=not successful,
            error="; ".join(errors) if not successful and errors else None,
        )
        logger.info(
            f"Web augmentation for '{query}': {len(successful)}/{len(sources)} sources "
            f"in {result.fetch_time_ms}ms"
        )
        # Only cache results that produced something usable
        if successful:
            self._cache[key] = (now, result)
        return result

    def clear_cache(self) -> None:
        self._cache.clear()
