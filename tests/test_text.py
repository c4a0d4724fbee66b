"""Query validation, slug and excerpt tests."""

import pytest

from wikigen.errors import ErrorCode, WikiGenerationError
from wikigen.generation.text import (
    extract_title,
    generate_excerpt,
    query_to_slug,
    slug_to_title,
    strip_markdown,
    validate_query,
)


@pytest.mark.parametrize(
    "query,slug",
    [
        ("Swaddling Techniques", "swaddling-techniques"),
        ("  Swaddling   Techniques!  ", "swaddling-techniques"),
        ("What's colic?", "whats-colic"),
        ("baby-led weaning", "baby-led-weaning"),
        ("tummy -- time", "tummy-time"),
    ],
)
def test_query_to_slug(query, slug):
    assert query_to_slug(query) == slug


def test_slug_to_title():
    assert slug_to_title("swaddling-techniques") == "Swaddling Techniques"


class TestValidateQuery:
    def test_strips_whitespace(self):
        assert validate_query("  colic  ") == "colic"

    @pytest.mark.parametrize("query", [None, "", "   ", "ab", "x" * 201, "colic; DROP TABLE"])
    def test_rejects_invalid(self, query):
        with pytest.raises(WikiGenerationError) as exc_info:
            validate_query(query)

        assert exc_info.value.code == ErrorCode.INVALID_QUERY

    def test_accepts_punctuation(self):
        assert validate_query("Is it safe to co-sleep?") == "Is it safe to co-sleep?"


def test_extract_title_uses_first_heading():
    content = "Intro line\n# Swaddling Techniques\n\n## Section\n"

    assert extract_title(content, "fallback") == "Swaddling Techniques"
    assert extract_title("no headings here", "fallback") == "fallback"


def test_strip_markdown_keeps_link_text():
    text = strip_markdown("# Title\n\nSee [colic](/wiki/colic) and **bold** text.\n- item")

    assert text == "See colic and bold text. item"


def test_generate_excerpt_cuts_at_word_boundary():
    content = "# Title\n\n" + "Swaddling helps babies settle. " * 20

    excerpt = generate_excerpt(content, max_length=60)

    assert excerpt.endswith("...")
    assert len(excerpt) <= 63
    assert not excerpt.startswith("Title")


def test_generate_excerpt_short_content_unchanged():
    assert generate_excerpt("# T\n\nShort page.") == "Short page."
