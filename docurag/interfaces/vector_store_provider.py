"""Abstract base class for vector-store providers.

The vector store holds one entry per chunk, keyed by the stable id
``"{document_id}_chunk_{chunk_index}"``, and answers cosine-similarity
queries.  Collections are created lazily on first write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docurag.models.rag import RetrievedEntry, VectorEntry


class IVectorStoreProvider(ABC):
    """Contract for vector-index storage and similarity search."""

    @abstractmethod
    async def upsert(self, collection: str, entries: list[VectorEntry]) -> int:
        """Insert or overwrite *entries* by id.

        Parameters
        ----------
        collection:
            Target collection, created with the cosine metric if absent.
        entries:
            Embedded chunks to store.

        Returns
        -------
        int
            Number of entries written.

        Raises
        ------
        docurag.utils.errors.IndexWriteError
            On any storage failure.  Writes are batched, so some entries may
            already be persisted when this is raised.
        """

    @abstractmethod
    async def query(self, collection: str, vector: list[float], k: int) -> list[RetrievedEntry]:
        """Return up to *k* nearest entries, best first.

        A missing or empty collection yields ``[]``.

        Raises
        ------
        ValueError
            If *k* is less than 1.
        docurag.utils.errors.IndexQueryError
            On any storage failure.
        """

    @abstractmethod
    async def delete(self, collection: str, ids: list[str]) -> None:
        """Remove entries by id.  Unknown ids and an empty list are no-ops.

        Raises
        ------
        docurag.utils.errors.IndexWriteError
            On any storage failure.
        """

    @abstractmethod
    async def list_ids(self, collection: str, document_id: str | None = None) -> list[str]:
        """Return stored entry ids, optionally only those of *document_id*."""

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Return the number of entries in *collection* (0 if it does not exist)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the backing store is reachable."""
