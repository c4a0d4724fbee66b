"""Source diversification for retrieved chunks."""

from collections import defaultdict

from wikigen.constants.retrieval import DEFAULT_MAX_PER_SOURCE, DEFAULT_MAX_RESULTS
from wikigen.retrieval.models import Chunk


def group_chunks_by_document(chunks: list[Chunk]) -> dict[str, list[Chunk]]:
    """Group chunks by document id, preserving input order within a group."""
    groups: dict[str, list[Chunk]] = defaultdict(list)
    for chunk in chunks:
        groups[chunk.document_id].append(chunk)
    return dict(groups)


def select_diverse_sources(
    chunks: list[Chunk],
    max_per_source: int = DEFAULT_MAX_PER_SOURCE,
    max_total: int = DEFAULT_MAX_RESULTS,
) -> list[Chunk]:
    """Cap chunks per document so several sources reach the final set.

    Groups are visited best-first (by their top chunk's similarity) and each
    contributes up to ``max_per_source`` of its best chunks until
    ``max_total`` is reached. The result is sorted by similarity, descending.

    With enough documents the result spans at least
    ``min(len(groups), ceil(max_total / max_per_source))`` distinct documents.
    """
    if not chunks or max_total <= 0 or max_per_source <= 0:
        return []

    groups = group_chunks_by_document(chunks)
    ordered_groups = sorted(
        (sorted(group, key=lambda c: c.similarity, reverse=True) for group in groups.values()),
        key=lambda group: group[0].similarity,
        reverse=True,
    )

    selected: list[Chunk] = []
    for group in ordered_groups:
        if len(selected) >= max_total:
            break
        room = max_total - len(selected)
        selected.extend(group[: min(max_per_source, room)])

    selected.sort(key=lambda c: c.similarity, reverse=True)
    return selected[:max_total]


def unique_document_count(chunks: list[Chunk]) -> int:
    return len({chunk.document_id for chunk in chunks})
