"""Token estimation and budget fitting.

``estimate_tokens`` is the only token estimator in the package; every budget
computation goes through it so limits stay consistent.
"""

import math

from wikigen.constants.generation import (
    CHARS_PER_TOKEN,
    MIN_TRUNCATION_TOKENS,
    SENTENCE_CUT_MIN_RATIO,
)

SENTENCE_ENDINGS = (". ", "! ", "? ")


def estimate_tokens(text: str) -> int:
    """Estimate token count from character length."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate text to roughly ``max_tokens``, preferring natural boundaries.

    A sentence boundary in the last fifth of the allowed length wins; the
    sentence's punctuation is kept. Otherwise the text is cut at the last
    space and "..." is appended. Text that already fits is returned as is.
    """
    if estimate_tokens(text) <= max_tokens:
        return text

    target_chars = math.floor(max_tokens * CHARS_PER_TOKEN)
    if target_chars <= 0:
        return ""
    head = text[:target_chars]

    sentence_end = max(head.rfind(ending) for ending in SENTENCE_ENDINGS)
    if sentence_end > target_chars * SENTENCE_CUT_MIN_RATIO:
        return head[: sentence_end + 1]

    # Leave room for the ellipsis so the result still fits the budget
    head = head[: max(target_chars - 3, 0)]
    last_space = head.rfind(" ")
    if last_space > 0:
        return head[:last_space] + "..."

    return head + "..."


def fit_chunks_to_token_budget(
    chunks: list[str],
    max_tokens: int,
    min_truncation_tokens: int = MIN_TRUNCATION_TOKENS,
) -> tuple[list[str], int, bool]:
    """Greedily select whole chunks that fit the budget.

    When the next chunk does not fit and more than ``min_truncation_tokens``
    remain, a truncated copy of it is appended and selection stops.

    Returns:
        Tuple of (selected chunk texts, estimated tokens used, truncated) where
        truncated is True when fewer whole chunks were kept than supplied.
    """
    selected: list[str] = []
    used = 0
    whole = 0

    for chunk in chunks:
        tokens = estimate_tokens(chunk)
        if used + tokens <= max_tokens:
            selected.append(chunk)
            used += tokens
            whole += 1
            continue

        remaining = max_tokens - used
        if remaining > min_truncation_tokens:
            partial = truncate_to_tokens(chunk, remaining)
            if partial:
                selected.append(partial)
                used += estimate_tokens(partial)
        break

    return selected, used, whole < len(chunks)
