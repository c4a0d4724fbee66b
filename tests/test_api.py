"""Wiki, cache and graph API endpoint tests."""

import pytest
from conftest import make_llm, make_service
from httpx import ASGITransport, AsyncClient

from wikigen.api.deps import get_service
from wikigen.constants.cache import POPULAR_WIKI_CACHE_CONTROL, WIKI_CACHE_CONTROL
from wikigen.llm.client import LLMError
from wikigen.main import app
from wikigen.throttle import GenerationController

ENTITIES_JSON = (
    '[{"text": "startle reflex", "confidence": "strong"},'
    ' {"text": "wearable sleeping bag", "confidence": "medium"}]'
)


@pytest.fixture
def service(temp_db, clock):
    return make_service(temp_db, clock, llm=make_llm(entities_json=ENTITIES_JSON))


@pytest.fixture
async def client(service):
    """Async client with the wiki service overridden."""
    app.dependency_overrides[get_service] = lambda: service
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


class TestWikiEndpoints:
    async def test_get_page_generates_on_miss(self, client):
        """GET /api/wiki/{slug} generates, then serves from cache."""
        first = await client.get("/api/wiki/swaddling-techniques")
        second = await client.get("/api/wiki/swaddling-techniques")

        assert first.status_code == 200
        data = first.json()
        assert data["slug"] == "swaddling-techniques"
        assert data["title"] == "Swaddling Techniques"
        assert data["cached"] is False
        assert "[startle reflex](/wiki/startle-reflex)" in data["content"]
        assert first.headers["X-RateLimit-Limit"] == "10"
        assert first.headers["X-RateLimit-Remaining"] == "9"

        assert second.json()["cached"] is True
        assert second.json()["view_count"] == 0

    async def test_popular_pages_get_longer_cache_headers(self, client, service):
        service.pages.popular_threshold = 2
        service.pages.upsert_page("colic", "Colic", "content")

        responses = [await client.get("/api/wiki/colic") for _ in range(3)]

        assert [r.headers["Cache-Control"] for r in responses] == [
            WIKI_CACHE_CONTROL,
            WIKI_CACHE_CONTROL,
            POPULAR_WIKI_CACHE_CONTROL,
        ]

    async def test_get_page_with_query(self, client):
        response = await client.get("/api/wiki/swaddle", params={"query": "How to swaddle"})

        assert response.status_code == 200
        assert response.json()["metadata"]["query"] == "How to swaddle"

    async def test_generate_invalid_query(self, client):
        response = await client.post("/api/wiki/generate", json={"query": "ab"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_QUERY"

    async def test_generate_failure_is_bad_gateway(self, client, service):
        service.generator.llm.generate_with_usage.side_effect = LLMError("provider down")

        response = await client.post("/api/wiki/generate", json={"query": "colic"})

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "GENERATION_FAILED"

    async def test_generate_rate_limited(self, client, service):
        service.controller = GenerationController(rate_limit_requests=1, cooldown_seconds=0)
        await client.post("/api/wiki/generate", json={"query": "colic"})

        response = await client.post("/api/wiki/generate", json={"query": "teething"})

        assert response.status_code == 429
        assert response.json()["detail"]["code"] == "RATE_LIMITED"
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"

    async def test_generate_returns_cached_unless_forced(self, client):
        await client.post("/api/wiki/generate", json={"query": "colic"})

        cached = await client.post("/api/wiki/generate", json={"query": "colic"})
        forced = await client.post("/api/wiki/generate", json={"query": "colic", "force": True})

        assert cached.json()["cached"] is True
        assert forced.json()["cached"] is False

    async def test_regenerate_missing_page(self, client):
        response = await client.post("/api/wiki/never-made/regenerate")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PAGE_NOT_FOUND"

    async def test_regenerate_respects_cooldown(self, client, service):
        service.controller = GenerationController(cooldown_seconds=30)
        await client.get("/api/wiki/colic")

        response = await client.post("/api/wiki/colic/regenerate")

        assert response.status_code == 429
        assert 1 <= int(response.headers["Retry-After"]) <= 30

    async def test_regenerate_increments_count(self, client):
        await client.get("/api/wiki/colic")

        response = await client.post("/api/wiki/colic/regenerate", json={"query": "infant colic"})

        assert response.status_code == 200
        assert response.json()["regeneration_count"] == 1
        assert response.json()["metadata"]["query"] == "infant colic"

    async def test_links_and_related(self, client):
        await client.get("/api/wiki/swaddling-techniques")
        await client.get("/api/wiki/startle-reflex")

        links = (await client.get("/api/wiki/swaddling-techniques/links")).json()
        related = (await client.get("/api/wiki/swaddling-techniques/related")).json()
        backlinks = (await client.get("/api/wiki/startle-reflex/backlinks")).json()

        by_slug = {link["slug"]: link for link in links}
        assert by_slug["startle-reflex"]["page_exists"] is True
        assert by_slug["wearable-sleeping-bag"]["page_exists"] is False
        assert [r["slug"] for r in related] == ["startle-reflex"]
        assert [b["slug"] for b in backlinks] == ["swaddling-techniques"]

    async def test_links_for_missing_page(self, client):
        response = await client.get("/api/wiki/unknown-page/links")

        assert response.status_code == 404


class TestCacheEndpoints:
    async def test_stats(self, client):
        await client.get("/api/wiki/colic")
        await client.get("/api/wiki/colic")

        data = (await client.get("/api/cache/stats")).json()

        assert data["pages"]["total_pages"] == 1
        assert data["events"]["hits"] == 1
        assert data["events"]["misses"] == 1

    async def test_stale(self, client, clock):
        await client.get("/api/wiki/colic")
        clock.advance(hours=49)

        data = (await client.get("/api/cache/stale")).json()

        assert [p["slug"] for p in data] == ["colic"]

    async def test_delete_page(self, client, service):
        await client.get("/api/wiki/colic")

        assert (await client.delete("/api/cache/pages/colic")).status_code == 204
        assert service.pages.exists("colic") is False
        assert (await client.delete("/api/cache/pages/colic")).status_code == 404

    async def test_invalidate_modes(self, client, service):
        await client.get("/api/wiki/colic")
        await client.get("/api/wiki/teething")

        by_slug = await client.post(
            "/api/cache/invalidate", json={"mode": "slugs", "slugs": ["colic", "missing"]}
        )
        everything = await client.post("/api/cache/invalidate", json={"mode": "all"})

        assert by_slug.json()["slugs"] == ["colic"]
        assert by_slug.json()["failed"] == [{"slug": "missing", "error": "Page not found"}]
        assert everything.json() == {"mode": "all", "count": 1, "slugs": [], "failed": []}

    async def test_invalidate_requires_mode_fields(self, client):
        response = await client.post("/api/cache/invalidate", json={"mode": "document"})

        assert response.status_code == 400

    async def test_invalidate_unknown_mode(self, client):
        response = await client.post("/api/cache/invalidate", json={"mode": "everything"})

        assert response.status_code == 422

    async def test_unpublish_and_restore(self, client, service):
        await client.get("/api/wiki/colic")

        unpublished = await client.post("/api/cache/pages/colic/unpublish")
        assert unpublished.json() == {"slug": "colic", "status": "unpublished"}
        assert service.pages.get_page("colic") is None

        restored = await client.post("/api/cache/pages/colic/restore")
        assert restored.json() == {"slug": "colic", "status": "published"}
        assert (await client.post("/api/cache/pages/missing/restore")).status_code == 404

    async def test_warm(self, client, service):
        response = await client.post(
            "/api/cache/warm", json={"topics": ["colic", "teething"], "delay_ms": 0}
        )

        assert response.status_code == 200
        assert response.json()["success"] == 2
        assert service.pages.exists("teething")

    async def test_warm_rejects_empty_topics(self, client):
        response = await client.post("/api/cache/warm", json={"topics": []})

        assert response.status_code == 400


class TestGraphEndpoints:
    async def test_stats_and_candidates(self, client):
        await client.get("/api/wiki/swaddling-techniques")

        stats = (await client.get("/api/graph/stats")).json()
        candidates = (await client.get("/api/graph/candidates", params={"tier": "strong"})).json()
        suggested = (await client.get("/api/graph/candidates/suggested")).json()

        assert stats["total_pages"] == 1
        assert stats["total_connections"] == 2
        assert stats["candidates"]["total"] == 2
        assert [c["normalized_slug"] for c in candidates] == ["startle-reflex"]
        assert {c["normalized_slug"] for c in suggested} == {"startle-reflex", "wearable-sleeping-bag"}

    async def test_unknown_tier(self, client):
        response = await client.get("/api/graph/candidates", params={"tier": "medium"})

        assert response.status_code == 400

    async def test_orphans(self, client, service):
        service.pages.upsert_page("lonely", "Lonely", "content")

        assert (await client.get("/api/graph/orphans")).json() == [
            {"slug": "lonely", "title": "Lonely"}
        ]
