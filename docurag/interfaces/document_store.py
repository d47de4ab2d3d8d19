"""Abstract base class for the relational document store.

The store owns :class:`~docurag.models.document.Document` rows and their
:class:`~docurag.models.document.ChunkRecord` children.  Status changes go
through the store so that illegal transitions are refused in one place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from docurag.models.document import ChunkRecord, Document, DocumentStatus


class IDocumentStore(ABC):
    """Contract for document and chunk persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create_document(
        self,
        owner_id: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
    ) -> Document:
        """Insert a new PENDING document and return it."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document, or None if it does not exist."""

    @abstractmethod
    async def list_documents(self, owner_id: str) -> list[Document]:
        """Return all documents owned by *owner_id*, newest upload first."""

    @abstractmethod
    async def list_by_status(
        self,
        statuses: list[DocumentStatus],
        stale_before: datetime | None = None,
    ) -> list[Document]:
        """Return every document whose status is one of *statuses*.

        With *stale_before*, only documents whose last heartbeat (or upload,
        if none was recorded) is not later than that instant are returned.
        """

    @abstractmethod
    async def mark_processing(self, document_id: str) -> Document:
        """Move the document to PROCESSING and clear any previous error.

        Raises
        ------
        docurag.utils.errors.NotFoundError
            If the document does not exist.
        docurag.utils.errors.StorageError
            If the current status does not allow the transition, or the
            write fails.
        """

    @abstractmethod
    async def complete_document(self, document_id: str, chunks: list[ChunkRecord]) -> Document:
        """Replace the document's chunk rows and mark it COMPLETED, atomically.

        Raises
        ------
        ValueError
            If *chunks* is empty.
        docurag.utils.errors.NotFoundError
            If the document does not exist.
        docurag.utils.errors.StorageError
            If the transition is illegal or the transaction fails.  Nothing
            is written in that case.
        """

    @abstractmethod
    async def fail_document(self, document_id: str, error: str) -> Document:
        """Mark the document FAILED with *error*.  Existing chunk rows are removed."""

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        """Return the document's chunk rows ordered by ``chunk_index``."""

    @abstractmethod
    async def touch(self, document_ids: list[str]) -> int:
        """Record that PENDING or PROCESSING documents are still owned by a live worker.

        Returns the number of rows refreshed.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete the document and (by cascade) its chunk rows.

        Returns True if a row was deleted.
        """
