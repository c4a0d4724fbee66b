"""ChromaDB vector store implementation."""

import gc
import logging
import time
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings
from chromadb.errors import ChromaError

logger = logging.getLogger(__name__)


class VectorStore:
    """Vector store wrapper for ChromaDB holding source document chunks.

    Each entry is one chunk of a source document. Metadata carries the
    ``document_id``, ``document_title``, ``document_author`` and
    ``source_type`` the retrieval layer needs for diversification and
    official-source detection. The collection uses cosine distance so that
    ``1 - distance`` is the chunk's similarity to the query.
    """

    COLLECTION_NAME = "wikigen_chunks"
    MAX_BATCH_SIZE = 500
    MAX_ADD_RETRIES = 3
    RETRY_BASE_DELAY = 0.5

    def __init__(self, persist_path: Path) -> None:
        """Initialize vector store with persistent storage.

        Args:
            persist_path: Directory path for ChromaDB persistence.
        """
        self._client = chromadb.PersistentClient(
            path=str(persist_path),
            settings=Settings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(
            name=self.COLLECTION_NAME,
            metadata={"hnsw:space": "cosine"},
        )

    @property
    def collection(self) -> chromadb.Collection:
        """Get the underlying ChromaDB collection."""
        return self._collection

    def count(self) -> int:
        return self._collection.count()

    def add_chunks(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]] | None = None,
    ) -> int:
        """Add chunks in batches, retrying each batch on transient errors.

        Embeddings are computed by the collection's embedding function.

        Args:
            ids: Unique chunk identifiers.
            documents: Chunk text.
            metadatas: Optional metadata per chunk.

        Returns:
            Number of chunks added.
        """
        total = 0
        for start in range(0, len(ids), self.MAX_BATCH_SIZE):
            end = start + self.MAX_BATCH_SIZE
            batch_meta = metadatas[start:end] if metadatas else None
            self._add_batch(ids[start:end], documents[start:end], batch_meta)
            total += len(ids[start:end])
        return total

    def _add_batch(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]] | None,
    ) -> None:
        for attempt in range(self.MAX_ADD_RETRIES + 1):
            try:
                self._collection.upsert(
                    ids=ids,
                    documents=documents,
                    metadatas=metadatas,  # type: ignore[arg-type]
                )
                return
            except ChromaError as e:
                if attempt == self.MAX_ADD_RETRIES:
                    raise
                delay = self.RETRY_BASE_DELAY * (2**attempt)
                logger.warning(f"Embedding batch failed ({e}), retrying in {delay:.1f}s")
                time.sleep(delay)

    def query(
        self,
        query_text: str,
        n_results: int = 10,
        where: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Query the vector store for similar chunks.

        Args:
            query_text: Text to search for.
            n_results: Maximum number of results to return.
            where: Optional metadata filter.

        Returns:
            Query results including ids, documents, metadatas, and distances.
        """
        result = self._collection.query(
            query_texts=[query_text],
            n_results=n_results,
            where=where,
        )
        return dict(result)

    def delete_document(self, document_id: str) -> None:
        """Delete every chunk belonging to a source document."""
        self._collection.delete(where={"document_id": document_id})

    def clear(self) -> None:
        """Clear all chunks from the collection."""
        self._client.delete_collection(name=self.COLLECTION_NAME)
        self._collection = self._client.get_or_create_collection(
            name=self.COLLECTION_NAME,
            metadata={"hnsw:space": "cosine"},
        )

    def close(self) -> None:
        """Release the client so file handles are freed."""
        self._collection = None  # type: ignore[assignment]
        self._client = None  # type: ignore[assignment]
        gc.collect()
