"""Shared pytest fixtures for all tests.

These fixtures properly clean up resources to prevent file descriptor leaks.
"""

import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from wikigen.cache.pages import PageStore
from wikigen.db.connection import Database
from wikigen.db.migrations import run_migrations
from wikigen.generation.orchestrator import WikiGenerator
from wikigen.links.candidates import LinkCandidateStore
from wikigen.links.graph import PageGraph
from wikigen.llm.client import LLMResponse
from wikigen.retrieval.models import Chunk
from wikigen.retrieval.search import Retriever
from wikigen.service import WikiService
from wikigen.throttle import GenerationController
from wikigen.vectorstore.store import VectorStore

SAMPLE_ARTICLE = """# Swaddling Techniques

Swaddling wraps a newborn snugly in a thin blanket so they feel secure and
settle more easily. Done well, it can calm the startle reflex and help a baby
sleep for longer stretches.

## How to Swaddle

1. Lay a thin cotton blanket flat and fold the top corner down.
2. Place your baby on their back with their shoulders just below the fold.
3. Wrap one side across the body and tuck it under the opposite arm.
4. Fold the bottom up loosely, leaving room for the hips to bend.
5. Wrap the final side across and tuck it in.

## Safe Sleep

Always place a swaddled baby on their back to sleep. Keep the wrap below the
shoulders and make sure the hips can move freely to protect hip development.
Stop swaddling once your baby shows signs of rolling over.

## Choosing a Wrap

Pick a lightweight, breathable fabric such as cotton muslin. Heavy blankets
and quilted wraps can cause overheating, which is linked to a higher risk of
sudden infant death. Check the back of your baby's neck: if it feels hot or
sweaty, remove a layer. Ready-made swaddle bags with fasteners are an option
for parents who find folding a blanket fiddly, as long as they fit well and
leave the hips free.

## When to Stop Swaddling

Most babies outgrow swaddling between two and four months of age. The most
important sign is rolling: a swaddled baby who rolls onto their front cannot
push up or turn their head freely, so swaddling must stop as soon as rolling
begins. Many families move to a wearable sleeping bag at this point, which
keeps a baby warm without restricting their arms. Some parents transition
gradually by leaving one arm out for a few nights before stopping altogether,
which can make the change easier for babies who have come to rely on the
wrap to settle.

## Practical Tips

- Practise the wrap a few times while your baby is calm and alert.
- Keep the room at a comfortable temperature of around 16 to 20 degrees.
- Leave room for two fingers between the wrap and your baby's chest.
- Never put a hat on a swaddled baby indoors.
- Try swaddling as part of a consistent bedtime routine.
- Stop if your baby consistently fights the wrap or seems distressed.

## When to Seek Help

Speak to your health visitor if your baby seems unusually unsettled or you
are unsure whether swaddling is right for them.
"""


class FixedClock:
    """Mutable UTC clock for time-dependent tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSearcher:
    """Searcher returning canned chunks and recording each call."""

    def __init__(self, chunks=None, fallback_chunks=None, error: Exception | None = None):
        self.chunks = list(chunks or [])
        self.fallback_chunks = list(fallback_chunks or [])
        self.error = error
        self.calls: list[float] = []

    async def search(self, query, threshold, limit, document_ids=None, source_types=None):
        self.calls.append(threshold)
        if self.error is not None:
            raise self.error
        source = self.chunks if len(self.calls) == 1 else self.fallback_chunks
        return [c for c in source if c.similarity >= threshold][:limit]


def make_chunk(
    chunk_id: str,
    document_id: str = "doc-1",
    similarity: float = 0.8,
    content: str | None = None,
    title: str | None = None,
    author: str | None = "Jane Author",
    source_type: str | None = "book",
) -> Chunk:
    return Chunk(
        chunk_id=chunk_id,
        document_id=document_id,
        content=content or f"Distinct passage {chunk_id} about settling a newborn at night.",
        similarity=similarity,
        document_title=title or f"Book {document_id}",
        document_author=author,
        source_type=source_type,
    )


def swaddling_chunks() -> list[Chunk]:
    """Seven strong matches across three books."""
    texts = [
        "Swaddling helps newborns feel secure by recreating the snug feel of the womb.",
        "Use a thin breathable cotton or muslin blanket when you swaddle a baby.",
        "Keep the swaddle loose around the hips so the legs can bend up and out.",
        "Always lay a swaddled baby on their back to sleep and never on the tummy.",
        "Stop swaddling when your baby starts showing signs of trying to roll over.",
        "A good swaddle stays below the shoulders and never covers the face or head.",
        "Many parents find swaddling calms the startle reflex during early weeks.",
    ]
    docs = ["book-a", "book-a", "book-b", "book-b", "book-c", "book-c", "book-a"]
    sims = [0.86, 0.82, 0.80, 0.78, 0.76, 0.74, 0.72]
    return [
        make_chunk(f"c{i}", document_id=doc, similarity=sim, content=text)
        for i, (text, doc, sim) in enumerate(zip(texts, docs, sims))
    ]


def make_llm(content: str = SAMPLE_ARTICLE, entities_json: str = "[]") -> AsyncMock:
    """LLM double: generation returns content, JSON calls return entities_json."""
    llm = AsyncMock()
    llm.generate_with_usage.return_value = LLMResponse(
        content=content, input_tokens=1200, output_tokens=450, model="test-model"
    )
    llm.generate_with_json.return_value = entities_json
    return llm


def make_service(db, clock=None, llm=None, chunks=None, controller=None, max_pages=1000) -> WikiService:
    """WikiService over a real database with a mocked LLM and no cooldown."""
    clock = clock or FixedClock()
    retriever = Retriever(FakeSearcher(chunks)) if chunks is not None else None
    generator = WikiGenerator(llm or make_llm(), retriever=retriever, clock=clock)
    return WikiService(
        generator,
        PageStore(db, clock=clock),
        LinkCandidateStore(db, clock=clock),
        PageGraph(db, clock=clock),
        controller=controller or GenerationController(cooldown_seconds=0),
        max_pages=max_pages,
    )


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Clean up resources after each test to prevent file descriptor leaks.

    This runs automatically after every test to help garbage collect
    any lingering ChromaDB or SQLite connections.
    """
    yield
    # Force garbage collection to release file handles
    gc.collect()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temp data dir and clear cached settings around each test."""
    from wikigen.api.deps import get_settings
    from wikigen.config import load_settings

    monkeypatch.setenv("WIKIGEN_DATA_DIR", str(tmp_path / "wikigen-data"))
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "ACTIVE_PROVIDER"):
        monkeypatch.delenv(name, raising=False)
    load_settings.cache_clear()
    get_settings.cache_clear()
    yield
    load_settings.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def temp_vectorstore(tmp_path):
    """Create a temporary vector store that cleans up properly.

    This fixture should be used instead of creating VectorStore instances
    directly in tests to ensure ChromaDB connections are released.
    """
    index_path = tmp_path / "index"
    index_path.mkdir()
    store = VectorStore(index_path)
    yield store
    # Clean up to release file handles
    store.close()
    gc.collect()


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database with the production schema applied."""
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    run_migrations(db)
    yield db
    # Clean up to release file handles
    db.close()
    gc.collect()


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path (for tests that manage their own connection)."""
    return tmp_path / "test.db"


@pytest.fixture
def clock():
    return FixedClock()
