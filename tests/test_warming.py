"""Cache warming tests."""

import pytest

from wikigen.cache.monitoring import CacheEvent
from wikigen.cache.pages import PageStore
from wikigen.cache.warming import (
    CacheWarmer,
    WarmingResult,
    WarmingSummary,
    estimate_warming_time,
    format_warming_summary,
    validate_warming_config,
    warm_single_topic,
)
from wikigen.errors import ErrorCode, WikiGenerationError
from wikigen.generation.text import query_to_slug, slug_to_title


@pytest.fixture
def pages(temp_db, clock):
    return PageStore(temp_db, clock=clock)


def make_producer(pages, fail_on=()):
    produced = []

    async def produce(topic):
        produced.append(topic)
        if topic in fail_on:
            raise WikiGenerationError(ErrorCode.GENERATION_FAILED, f"could not write {topic}")
        slug = query_to_slug(topic)
        return pages.upsert_page(slug, slug_to_title(slug), f"# {topic}", confidence_score=0.8)

    produce.produced = produced
    return produce


async def test_warm_single_topic_success(pages):
    result = await warm_single_topic("Tummy Time", make_producer(pages), pages)

    assert result.status == "success"
    assert result.slug == "tummy-time"
    assert result.confidence_score == 0.8
    assert pages.monitor.count(CacheEvent.WARM) == 1


async def test_warm_single_topic_failure(pages):
    result = await warm_single_topic("colic", make_producer(pages, fail_on={"colic"}), pages)

    assert result.status == "error"
    assert result.error == "could not write colic"
    assert pages.monitor.count(CacheEvent.ERROR) == 1


async def test_warm_skips_existing_and_reports_failures(pages):
    pages.upsert_page("colic", "Colic", "# Colic")
    produce = make_producer(pages, fail_on={"baby fever"})

    summary = await CacheWarmer(pages, produce).warm(
        topics=["colic", "teething", "baby fever"], delay_ms=0
    )

    assert (summary.total, summary.success, summary.skipped, summary.failed) == (3, 1, 1, 1)
    assert [r.status for r in summary.results] == ["skipped", "success", "error"]
    assert produce.produced == ["teething", "baby fever"]
    assert summary.errors == [{"slug": "baby-fever", "error": "could not write baby fever"}]


async def test_warm_without_skip_regenerates(pages):
    pages.upsert_page("colic", "Colic", "# Colic")
    produce = make_producer(pages)

    summary = await CacheWarmer(pages, produce).warm(topics=["colic"], skip_existing=False, delay_ms=0)

    assert summary.success == 1
    assert produce.produced == ["colic"]


async def test_warm_defaults_to_popular_topics(pages):
    produce = make_producer(pages)

    summary = await CacheWarmer(pages, produce).warm(max_topics=2, delay_ms=0)

    assert summary.total == 2
    assert produce.produced == ["pregnancy nutrition", "morning sickness"]


async def test_unexpected_errors_propagate(pages):
    async def produce(topic):
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        await CacheWarmer(pages, produce).warm(topics=["colic"], delay_ms=0)


def test_estimate_warming_time():
    assert estimate_warming_time(10, avg_generation_ms=5000, delay_ms=1000) == {
        "total_ms": 60000,
        "total_minutes": 1,
        "per_page_ms": 6000,
    }


def test_validate_warming_config():
    assert validate_warming_config(None, 1000) == (True, [])

    valid, issues = validate_warming_config([], 50)
    assert valid is False
    assert len(issues) == 2

    assert validate_warming_config(["colic"], 20000)[1] == [
        "Regeneration delay very long, warming will take a long time"
    ]


def test_format_warming_summary():
    summary = WarmingSummary(
        results=[
            WarmingResult("colic", "colic", "success", confidence_score=0.81, duration_ms=1500),
            WarmingResult("teething", "teething", "skipped"),
            WarmingResult("fever", "fever", "error", error="timeout"),
        ],
        total_duration_ms=2000,
    )

    text = format_warming_summary(summary)

    assert "Success: 1 (33.3%)" in text
    assert "OK   colic (0.81, 1.5s)" in text
    assert "SKIP teething" in text
    assert "FAIL fever: timeout" in text
