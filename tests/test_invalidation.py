"""Cache invalidation tests."""

import pytest

from wikigen.cache.invalidation import CacheInvalidator
from wikigen.cache.pages import PageStore
from wikigen.links.candidates import LinkCandidateStore
from wikigen.links.graph import PageGraph


@pytest.fixture
def pages(temp_db, clock):
    return PageStore(temp_db, clock=clock)


@pytest.fixture
def graph(temp_db, clock):
    return PageGraph(temp_db, clock=clock)


@pytest.fixture
def candidates(temp_db, clock):
    return LinkCandidateStore(temp_db, clock=clock)


@pytest.fixture
def invalidator(pages, graph, candidates):
    return CacheInvalidator(pages, graph, candidates)


def test_invalidate_single_page_cleans_links(pages, graph, candidates, invalidator):
    pages.upsert_page("colic", "Colic", "content")
    pages.upsert_page("swaddling", "Swaddling", "content")
    graph.upsert_connection("swaddling", "colic", "colic", "strong")
    candidates.upsert("Colic", "colic", "strong", source_slug="swaddling")
    assert candidates.get("colic").page_exists is True

    assert invalidator.invalidate("colic") is True

    assert pages.exists("colic") is False
    assert graph.get_connection("swaddling", "colic") is None
    assert candidates.get("colic").page_exists is False
    assert invalidator.invalidate("colic") is False


def test_invalidate_all_returns_count(pages, invalidator):
    for i in range(37):
        pages.upsert_page(f"topic-{i}", f"Topic {i}", "content")

    assert invalidator.invalidate_all() == 37
    assert pages.count() == 0
    assert invalidator.invalidate_all() == 0


def test_invalidate_many_reports_missing(pages, invalidator):
    pages.upsert_page("colic", "Colic", "content")

    summary = invalidator.invalidate_many(["colic", "missing"])

    assert summary.success == ["colic"]
    assert summary.failed == [{"slug": "missing", "error": "Page not found"}]
    assert summary.to_dict()["total"] == 2


def test_invalidate_by_document(pages, invalidator):
    pages.upsert_page("colic", "Colic", "content", metadata={"document_ids": ["book-a", "book-b"]})
    pages.upsert_page("teething", "Teething", "content", metadata={"document_ids": ["book-c"]})
    pages.upsert_page("fever", "Fever", "content")

    assert invalidator.invalidate_by_document("book-b") == ["colic"]
    assert pages.exists("teething")
    assert invalidator.invalidate_by_document("unknown") == []


def test_invalidate_by_search(pages, invalidator):
    pages.upsert_page("colic", "Colic", "Long crying spells")
    pages.upsert_page("teething", "Teething", "Drooling and crying")
    pages.upsert_page("fever", "Fever", "High temperature")

    assert invalidator.invalidate_by_search("crying") == ["colic", "teething"]
    assert pages.count() == 1


def test_invalidate_by_search_treats_wildcards_literally(pages, invalidator):
    pages.upsert_page("colic", "Colic", "Long crying spells")
    pages.upsert_page("teething", "Teething", "Drooling and crying")
    pages.upsert_page("fever", "Fever", "Above 38% of the time")

    assert invalidator.invalidate_by_search("_") == []
    assert invalidator.invalidate_by_search("38%") == ["fever"]
    assert pages.count() == 2


def test_invalidate_by_search_removes_every_match(pages, invalidator):
    for i in range(25):
        pages.upsert_page(f"colic-{i}", f"Colic {i}", "content")

    assert len(invalidator.invalidate_by_search("colic")) == 25
    assert pages.count() == 0


def test_invalidate_stale(pages, invalidator, clock):
    pages.upsert_page("old", "Old", "content")
    clock.advance(hours=49)
    pages.upsert_page("fresh", "Fresh", "content")

    assert invalidator.invalidate_stale() == 1
    assert pages.exists("fresh")


def test_invalidate_low_confidence(pages, invalidator):
    pages.upsert_page("weak", "Weak", "content", confidence_score=0.2)
    pages.upsert_page("strong", "Strong", "content", confidence_score=0.9)

    assert invalidator.invalidate_low_confidence(0.3) == 1
    assert [p.slug for p in pages.list_pages()] == ["strong"]


def test_soft_invalidate_and_restore(pages, invalidator):
    pages.upsert_page("colic", "Colic", "content")

    assert invalidator.soft_invalidate("colic") is True
    assert pages.get_page("colic") is None
    assert pages.exists("colic")

    assert invalidator.restore("colic") is True
    assert pages.get_page("colic") is not None

    assert invalidator.soft_invalidate("missing") is False
    assert invalidator.restore("missing") is False
