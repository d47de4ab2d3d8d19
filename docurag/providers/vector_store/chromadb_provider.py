"""ChromaDB vector store provider adapter.

Wraps a ChromaDB client to implement :class:`IVectorStoreProvider`.  A
local ``PersistentClient`` is used by default; setting ``chromadb_host``
switches to ``HttpClient`` against a ChromaDB server.  Every collection is
created with the cosine metric, and embeddings are always supplied by the
caller, never computed by ChromaDB.  The SDK is synchronous, so every
call runs in a worker thread via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

# ChromaDB reads this before the client is constructed.
os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from docurag.interfaces.vector_store_provider import IVectorStoreProvider
from docurag.models.rag import RetrievedEntry, VectorEntry
from docurag.utils.errors import IndexQueryError, IndexWriteError

logger = structlog.get_logger(logger_name=__name__)

_UPSERT_BATCH_SIZE = 500
_PAGE_SIZE = 5000
_COLLECTION_METADATA = {"hnsw:space": "cosine"}


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that refuses to run.

    Passing it to ChromaDB stops the client from loading its default ONNX
    model; docurag always hands over precomputed vectors.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docurag supplies precomputed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store backed by ChromaDB.

    Collections are looked up by name on each call and cached once they
    exist.  Reads against a collection that was never written return empty
    results instead of creating it.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        host: str = "",
        port: int = 8000,
        auth_token: str = "",
        client: Any | None = None,
    ) -> None:
        client_settings = chromadb.config.Settings(anonymized_telemetry=False)
        if client is not None:
            self._client = client
            self._location = "injected"
        elif host:
            headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else None
            self._client = chromadb.HttpClient(
                host=host, port=port, headers=headers, settings=client_settings
            )
            self._location = f"{host}:{port}"
        else:
            self._client = chromadb.PersistentClient(
                path=persist_directory, settings=client_settings
            )
            self._location = persist_directory
        self._collections: dict[str, Any] = {}
        logger.info("chromadb_client_ready", location=self._location)

    # ------------------------------------------------------------------
    # Collection handling
    # ------------------------------------------------------------------

    def _collection_names(self) -> set[str]:
        # Depending on the chromadb release, list_collections() returns
        # either Collection objects or plain names.
        return {getattr(c, "name", c) for c in self._client.list_collections()}

    def _get_collection(self, name: str, create: bool) -> Any | None:
        cached = self._collections.get(name)
        if cached is not None:
            return cached

        if not create and name not in self._collection_names():
            return None

        # A collection persisted with another embedding function rejects
        # _NoopEmbeddingFunction with ValueError; open it without one.
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata=_COLLECTION_METADATA,
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata=_COLLECTION_METADATA,
            )
        self._collections[name] = collection
        return collection

    # ------------------------------------------------------------------
    # Sync helpers (executed via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _upsert_sync(self, collection: str, entries: list[VectorEntry]) -> int:
        target = self._get_collection(collection, create=True)
        stored = 0
        for start in range(0, len(entries), _UPSERT_BATCH_SIZE):
            batch = entries[start : start + _UPSERT_BATCH_SIZE]
            target.upsert(
                ids=[e.id for e in batch],
                embeddings=[e.vector for e in batch],
                documents=[e.text for e in batch],
                metadatas=[e.metadata() for e in batch],
            )
            stored += len(batch)
        return stored

    def _query_sync(self, collection: str, vector: list[float], k: int) -> dict[str, Any] | None:
        target = self._get_collection(collection, create=False)
        if target is None:
            return None
        available = target.count()
        if available == 0:
            return None
        return target.query(
            query_embeddings=[vector],
            n_results=min(k, available),
            include=["documents", "metadatas", "distances"],
        )

    def _delete_sync(self, collection: str, ids: list[str]) -> None:
        target = self._get_collection(collection, create=False)
        if target is not None:
            target.delete(ids=list(ids))

    def _list_ids_sync(self, collection: str, document_id: str | None) -> list[str]:
        target = self._get_collection(collection, create=False)
        if target is None:
            return []
        kwargs: dict[str, Any] = {"include": []}
        if document_id is not None:
            kwargs["where"] = {"document_id": document_id}

        found: list[str] = []
        offset = 0
        while True:
            page = target.get(**kwargs, limit=_PAGE_SIZE, offset=offset)
            page_ids = page["ids"] or []
            found.extend(page_ids)
            if len(page_ids) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE
        return found

    def _count_sync(self, collection: str) -> int:
        target = self._get_collection(collection, create=False)
        return 0 if target is None else target.count()

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, collection: str, entries: list[VectorEntry]) -> int:
        """Upsert *entries* in batches of 500.

        A failure in a later batch leaves the earlier batches stored.
        """
        if not entries:
            return 0

        try:
            stored = await asyncio.to_thread(self._upsert_sync, collection, entries)
        except Exception as exc:
            raise IndexWriteError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("chromadb_upsert", collection=collection, count=stored)
        return stored

    async def query(self, collection: str, vector: list[float], k: int) -> list[RetrievedEntry]:
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")

        try:
            results = await asyncio.to_thread(self._query_sync, collection, vector, k)
        except Exception as exc:
            raise IndexQueryError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results:
            return []
        ids = results["ids"][0] if results.get("ids") else []
        if not ids:
            return []
        documents = results["documents"][0] if results.get("documents") else [""] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        retrieved: list[RetrievedEntry] = []
        for entry_id, doc_text, meta, distance in zip(
            ids, documents, metadatas, distances, strict=True
        ):
            meta = meta or {}
            retrieved.append(
                RetrievedEntry(
                    id=entry_id,
                    document_id=str(meta.get("document_id", "")),
                    chunk_index=int(meta.get("chunk_index", 0)),
                    text=doc_text if doc_text is not None else str(meta.get("text", "")),
                    similarity_score=max(0.0, min(1.0, 1.0 - distance)),
                )
            )
        retrieved.sort(key=lambda r: r.similarity_score, reverse=True)

        logger.info(
            "chromadb_query",
            collection=collection,
            requested=k,
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else 0.0,
        )
        return retrieved

    async def delete(self, collection: str, ids: list[str]) -> None:
        if not ids:
            return
        try:
            await asyncio.to_thread(self._delete_sync, collection, ids)
        except Exception as exc:
            raise IndexWriteError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_delete", collection=collection, count=len(ids))

    async def list_ids(self, collection: str, document_id: str | None = None) -> list[str]:
        """Return entry ids, paging through the collection 5000 rows at a time."""
        try:
            return await asyncio.to_thread(self._list_ids_sync, collection, document_id)
        except Exception as exc:
            raise IndexQueryError(
                message=f"ChromaDB list_ids failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def count(self, collection: str) -> int:
        try:
            return await asyncio.to_thread(self._count_sync, collection)
        except Exception as exc:
            raise IndexQueryError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:  # noqa: BLE001
            return False
