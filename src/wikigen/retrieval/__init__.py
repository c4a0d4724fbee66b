"""Retrieval: search, source prioritization, diversification and context assembly."""

from wikigen.retrieval.context import AssembledContext, assemble_context
from wikigen.retrieval.models import Chunk, SearchStats
from wikigen.retrieval.search import ChunkSearcher, RetrievalResult, Retriever
from wikigen.retrieval.tokens import estimate_tokens

__all__ = [
    "AssembledContext",
    "Chunk",
    "ChunkSearcher",
    "RetrievalResult",
    "Retriever",
    "SearchStats",
    "assemble_context",
    "estimate_tokens",
]
