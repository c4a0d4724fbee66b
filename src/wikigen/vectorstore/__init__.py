"""Vector store module for semantic search."""

from wikigen.vectorstore.store import VectorStore

__all__ = ["VectorStore"]
