"""Data models for retrieved chunks."""

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass
class Chunk:
    """A retrieved slice of a source document.

    Attributes:
        chunk_id: Vector store identifier.
        document_id: Source document the chunk belongs to.
        content: Chunk text.
        similarity: Similarity to the query in [0, 1]. After prioritization
            this is the boosted value.
        document_title: Title of the source document.
        document_author: Author or publishing organisation.
        source_type: Kind of source ("book", "article", "website", ...).
        is_official: Set by prioritization for recognised organisations.
        original_similarity: Similarity before any official boost.
        boosted: Whether the official boost was applied.
    """

    chunk_id: str
    document_id: str
    content: str
    similarity: float
    document_title: str = ""
    document_author: str | None = None
    source_type: str | None = None
    is_official: bool = False
    original_similarity: float | None = None
    boosted: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_similarity(self, similarity: float, **changes: Any) -> "Chunk":
        """Copy of this chunk with a new similarity and any other field changes."""
        return replace(self, similarity=similarity, **changes)

    @property
    def source_label(self) -> str:
        """Citation label: "title by author", or just the title."""
        if self.document_author:
            return f"{self.document_title} by {self.document_author}"
        return self.document_title

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "document_title": self.document_title,
            "document_author": self.document_author,
            "source_type": self.source_type,
            "similarity": round(self.similarity, 4),
            "is_official": self.is_official,
            "boosted": self.boosted,
        }


@dataclass
class SearchStats:
    """Summary of a retrieval pass, kept in page metadata."""

    raw_count: int = 0
    diversified_count: int = 0
    threshold_used: float = 0.0
    retried: bool = False
    unique_documents: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_count": self.raw_count,
            "diversified_count": self.diversified_count,
            "threshold_used": self.threshold_used,
            "retried": self.retried,
            "unique_documents": self.unique_documents,
        }
