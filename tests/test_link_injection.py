"""Link injection tests."""

from wikigen.links.entities import EntityLink, build_entities
from wikigen.links.injection import (
    extract_links,
    get_link_class,
    inject_links,
    is_already_linked,
    preview_links,
    strip_wiki_links,
)

CONTENT = (
    "Swaddling can help with colic. The Moro reflex startles newborns. "
    "Colic often peaks at six weeks."
)


def _entities(content, *texts):
    return build_entities(content, [{"text": t, "confidence": "strong"} for t in texts])


def test_links_first_occurrence_only():
    linked = inject_links(CONTENT, _entities(CONTENT, "colic", "Moro reflex"))

    assert linked == (
        "Swaddling can help with [colic](/wiki/colic). The [Moro reflex](/wiki/moro-reflex) "
        "startles newborns. Colic often peaks at six weeks."
    )


def test_keeps_original_casing():
    content = "Colic is common in young babies."

    assert inject_links(content, _entities(content, "colic")) == (
        "[Colic](/wiki/colic) is common in young babies."
    )


def test_existing_links_are_not_nested():
    content = "See [colic](/wiki/colic) for details."
    entity = EntityLink(text="colic", slug="colic", confidence="strong", start=5, end=10)

    assert is_already_linked(content, 5, 10)
    assert inject_links(content, [entity]) == content


def test_text_mismatch_is_skipped():
    entity = EntityLink(text="colic", slug="colic", confidence="strong", start=0, end=5)

    assert inject_links(CONTENT, [entity]) == CONTENT


def test_invalid_positions_are_skipped():
    entity = EntityLink(text="colic", slug="colic", confidence="strong")

    assert inject_links(CONTENT, [entity]) == CONTENT


def test_plain_text_is_not_linked():
    assert not is_already_linked(CONTENT, 24, 29)


def test_extract_and_strip_links():
    linked = inject_links(CONTENT, _entities(CONTENT, "colic", "Moro reflex"))

    assert extract_links(linked) == [("colic", "colic"), ("Moro reflex", "moro-reflex")]
    assert strip_wiki_links(linked) == CONTENT


def test_link_classes():
    strong = EntityLink(text="colic", slug="colic", confidence="strong")
    medium = EntityLink(text="reflux", slug="reflux", confidence="medium")
    weak = EntityLink(text="hiccups", slug="hiccups", confidence="weak")

    assert get_link_class(weak, {"hiccups"}) == "wiki-link-strong"
    assert get_link_class(strong, set()) == "wiki-link-medium"
    assert get_link_class(medium, set()) == "wiki-link-weak"
    assert get_link_class(weak, set()) == "wiki-link-ghost"


def test_preview_does_not_modify_content():
    entities = _entities(CONTENT, "colic", "newborns")

    previews = preview_links(CONTENT, entities, {"colic"})

    assert [p.would_link for p in previews] == [True, True]
    assert previews[0].link_class == "wiki-link-strong"
