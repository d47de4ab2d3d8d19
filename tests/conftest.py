"""Shared pytest fixtures for the docurag test suite."""

from __future__ import annotations

import hashlib
import struct
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.interfaces.vector_store_provider import IVectorStoreProvider
from docurag.models.chat import ChatMessage
from docurag.models.rag import RetrievedEntry, VectorEntry
from docurag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docurag.providers.storage.sqlite_history_store import SQLiteHistoryStore
from docurag.utils.errors import CompletionError, IndexWriteError

# ---------------------------------------------------------------------------
# Embedding / vector store doubles
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Unpack as unsigned ints so no NaN/inf bit patterns sneak in.
    values = [v / 2**31 - 1.0 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []

    async def embed(self, text: str) -> list[float]:
        return _hash_to_vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [_hash_to_vector(t) for t in texts]

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class MockVectorStore(IVectorStoreProvider):
    """In-memory vector store backed by a dict per collection.

    Scores entries by cosine similarity (dot product of unit vectors),
    clamped to [0, 1].
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, VectorEntry]] = {}
        self.fail_upsert = False
        self.fail_delete = False

    async def upsert(self, collection: str, entries: list[VectorEntry]) -> int:
        if self.fail_upsert:
            raise IndexWriteError(message="upsert refused", provider_name="mock-vector-store")
        store = self._collections.setdefault(collection, {})
        for entry in entries:
            store[entry.id] = entry
        return len(entries)

    async def query(self, collection: str, vector: list[float], k: int) -> list[RetrievedEntry]:
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        scored: list[RetrievedEntry] = []
        for entry in self._collections.get(collection, {}).values():
            dot = sum(a * b for a, b in zip(vector, entry.vector, strict=False))
            scored.append(
                RetrievedEntry(
                    id=entry.id,
                    document_id=entry.document_id,
                    chunk_index=entry.chunk_index,
                    text=entry.text,
                    similarity_score=max(0.0, min(1.0, dot)),
                )
            )
        scored.sort(key=lambda r: r.similarity_score, reverse=True)
        return scored[:k]

    async def delete(self, collection: str, ids: list[str]) -> None:
        if self.fail_delete:
            raise IndexWriteError(message="delete refused", provider_name="mock-vector-store")
        store = self._collections.get(collection, {})
        for entry_id in ids:
            store.pop(entry_id, None)

    async def list_ids(self, collection: str, document_id: str | None = None) -> list[str]:
        return [
            entry.id
            for entry in self._collections.get(collection, {}).values()
            if document_id is None or entry.document_id == document_id
        ]

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    def get_provider_name(self) -> str:
        return "mock-vector-store"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# LLM double
# ---------------------------------------------------------------------------


class ScriptedLLM(ILLMProvider):
    """LLM provider that replays a fixed answer.

    ``stream`` yields ``fragments`` one at a time.  With ``fail_after`` set,
    it raises :class:`CompletionError` after that many fragments.  Every
    message list received is kept in ``calls``; ``closed`` counts streams
    whose generator was finalised.
    """

    def __init__(
        self,
        fragments: list[str] | None = None,
        fail_after: int | None = None,
    ) -> None:
        self.fragments = fragments if fragments is not None else ["Hello", ", ", "world."]
        self.fail_after = fail_after
        self.calls: list[list[ChatMessage]] = []
        self.closed = 0

    async def complete(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> str:
        self.calls.append(list(messages))
        if self.fail_after is not None:
            raise CompletionError(message="scripted failure", provider_name="scripted")
        return "".join(self.fragments)

    async def stream(
        self,
        messages: list[ChatMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        try:
            for position, fragment in enumerate(self.fragments):
                if self.fail_after is not None and position >= self.fail_after:
                    raise CompletionError(message="stream dropped", provider_name="scripted")
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise CompletionError(message="stream dropped", provider_name="scripted")
        finally:
            self.closed += 1

    def get_provider_name(self) -> str:
        return "scripted"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    """Mock IEmbeddingProvider returning deterministic hash-based vectors."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    """Mock IVectorStoreProvider backed by an in-memory dict."""
    return MockVectorStore()


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "docurag_test.db"


@pytest_asyncio.fixture
async def document_store(db_path: Path) -> SQLiteDocumentStore:
    """Initialised document store on a temp SQLite file."""
    store = SQLiteDocumentStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def history_store(db_path: Path) -> SQLiteHistoryStore:
    """Initialised history store sharing the document store's database."""
    store = SQLiteHistoryStore(db_path=db_path)
    await store.initialize()
    return store


@pytest.fixture
def sample_text() -> str:
    """Multi-paragraph text for chunking and ingestion tests."""
    return (
        "The Meridian Agreement was signed in Lisbon on 4 March 2021. "
        "Dr. Amara Osei led the negotiating team for the northern delegation, "
        "while Prof. Hugo Lindqvist represented the coastal provinces.\n\n"
        "Under the agreement, shared fishing grounds are managed by a joint "
        "commission. The commission meets twice a year, e.g. in spring and "
        "autumn, and publishes catch quotas for each member province.\n\n"
        "Disputes are referred to an arbitration panel of three members. "
        "Each side appoints one arbitrator and the third is chosen by lot. "
        "Decisions of the panel are final and binding on all parties.\n\n"
        "The agreement runs for twenty years and renews automatically unless "
        "a member gives notice at least eighteen months before expiry."
    )
