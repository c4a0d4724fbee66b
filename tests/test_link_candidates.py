"""Link candidate registry tests."""

import pytest

from wikigen.cache.pages import PageStore
from wikigen.links.candidates import LinkCandidateStore, candidate_tier, upgrade_tier


@pytest.fixture
def candidates(temp_db, clock):
    return LinkCandidateStore(temp_db, clock=clock)


def test_first_mention_creates_candidate(candidates, clock):
    record = candidates.upsert("Colic", "colic", "weak", source_slug="crying-baby")

    assert record.mention_count == 1
    assert record.tier == "weak"
    assert record.mentioned_in == ["crying-baby"]
    assert record.page_exists is False
    assert record.first_seen_at == clock.now


def test_tier_never_downgrades(candidates):
    candidates.upsert("Colic", "colic", "weak", source_slug="a")
    candidates.upsert("Colic", "colic", "strong", source_slug="b")
    record = candidates.upsert("colic", "colic", "weak", source_slug="a")

    assert record.tier == "strong"
    assert record.mention_count == 3
    assert record.mentioned_in == ["a", "b"]


def test_last_seen_moves_forward(candidates, clock):
    candidates.upsert("Colic", "colic", "weak")
    clock.advance(hours=1)
    record = candidates.upsert("Colic", "colic", "weak")

    assert record.last_seen_at > record.first_seen_at


def test_unknown_tier_rejected(candidates):
    with pytest.raises(ValueError):
        candidates.upsert("Colic", "colic", "medium")


def test_existing_page_is_detected(temp_db, candidates, clock):
    PageStore(temp_db, clock=clock).upsert_page("colic", "Colic", "content")

    assert candidates.upsert("Colic", "colic", "weak").page_exists is True


def test_upsert_many_and_suggestions(candidates):
    candidates.upsert_many(
        [("Colic", "colic", "strong"), ("Reflux", "reflux", "weak"), ("Colic", "colic", "weak")],
        source_slug="crying-baby",
    )
    candidates.upsert("Hiccups", "hiccups", "ghost")
    candidates.mark_page_exists("reflux")

    suggested = candidates.get_suggested(limit=5)

    assert [c.normalized_slug for c in suggested] == ["colic", "hiccups"]
    assert suggested[0].mention_count == 2


def test_list_filters(candidates):
    candidates.upsert_many(
        [("Colic", "colic", "strong"), ("Colic", "colic", "strong"), ("Reflux", "reflux", "weak")]
    )

    assert [c.normalized_slug for c in candidates.list(min_mentions=2)] == ["colic"]
    assert [c.normalized_slug for c in candidates.list(tier="weak")] == ["reflux"]
    assert len(candidates.list(page_exists=False)) == 2


def test_stats(candidates):
    candidates.upsert("Colic", "colic", "strong")
    candidates.upsert("Reflux", "reflux", "weak")
    candidates.upsert("Hiccups", "hiccups", "ghost")
    candidates.mark_page_exists("colic")

    assert candidates.get_stats() == {
        "total": 3,
        "with_pages": 1,
        "without_pages": 2,
        "strong": 1,
        "weak": 1,
        "ghost": 1,
    }


def test_delete(candidates):
    candidates.upsert("Colic", "colic", "weak")

    assert candidates.delete("colic") is True
    assert candidates.get("colic") is None
    assert candidates.delete("colic") is False


@pytest.mark.parametrize(
    "confidence,tier",
    [("strong", "strong"), ("medium", "weak"), ("weak", "weak"), ("ghost", "ghost"), ("other", "ghost")],
)
def test_candidate_tier_mapping(confidence, tier):
    assert candidate_tier(confidence) == tier


def test_upgrade_tier():
    assert upgrade_tier("ghost", "weak") == "weak"
    assert upgrade_tier("strong", "ghost") == "strong"


def test_page_mentions_count_once_per_page(candidates):
    candidates.record_page_mentions("crying-baby", [("Colic", "colic", "weak")])
    added = candidates.record_page_mentions(
        "crying-baby", [("Colic", "colic", "strong"), ("Reflux", "reflux", "weak")]
    )

    colic = candidates.get("colic")
    assert added == 1
    assert colic.mention_count == 1
    assert colic.tier == "strong"
    assert candidates.get("reflux").mentioned_in == ["crying-baby"]


def test_page_mentions_retract_dropped_topics(candidates):
    candidates.record_page_mentions("crying-baby", [("Colic", "colic", "weak")])
    candidates.record_page_mentions("tummy-pain", [("Colic", "colic", "weak")])

    candidates.record_page_mentions("crying-baby", [])

    colic = candidates.get("colic")
    assert colic.mention_count == 1
    assert colic.mentioned_in == ["tummy-pain"]
