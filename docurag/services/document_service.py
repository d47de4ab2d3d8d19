"""Document management: upload, ingestion hand-off, lookup and deletion.

This is the entry point callers use for documents.  It validates uploads,
extracts their text, records them as PENDING and hands the text to the
:class:`~docurag.services.ingestion.worker.IngestionWorker`.  Status is
then observable through :meth:`DocumentService.get_document`.
"""

from __future__ import annotations

import asyncio

import structlog

from docurag.interfaces.document_parser import IDocumentParser
from docurag.interfaces.document_store import IDocumentStore
from docurag.models.document import ChunkRecord, Document
from docurag.services.ingestion.ingestion_service import IngestionService
from docurag.services.ingestion.worker import IngestionWorker
from docurag.utils.errors import ExtractionError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
_DEFAULT_MIME_TYPES = ("application/pdf", "text/plain", "text/markdown")


class DocumentService:
    """Facade over the document store, parser and ingestion worker."""

    def __init__(
        self,
        document_store: IDocumentStore,
        parser: IDocumentParser,
        ingestion_service: IngestionService,
        worker: IngestionWorker,
        allowed_mime_types: tuple[str, ...] | list[str] = _DEFAULT_MIME_TYPES,
        max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._document_store = document_store
        self._parser = parser
        self._ingestion = ingestion_service
        self._worker = worker
        self._allowed = frozenset(m.lower() for m in allowed_mime_types)
        self._max_upload_bytes = max_upload_bytes

    async def upload(
        self,
        owner_id: str,
        filename: str,
        mime_type: str,
        content: bytes,
    ) -> Document:
        """Validate and extract an upload, then queue it for ingestion.

        Extraction happens before any record is created, so a rejected
        upload leaves nothing behind.

        Raises
        ------
        ExtractionError
            If the file is too large, of a disallowed type, or unreadable.
        """
        kind = mime_type.split(";", 1)[0].strip().lower()
        if len(content) > self._max_upload_bytes:
            raise ExtractionError(
                message=(
                    f"{filename} is {len(content)} bytes; the limit is "
                    f"{self._max_upload_bytes} bytes"
                )
            )
        if kind not in self._allowed or not self._parser.supports(kind):
            raise ExtractionError(
                message=f"Unsupported file type {mime_type!r}; allowed: {sorted(self._allowed)}"
            )

        # PyMuPDF is synchronous and can be slow on large PDFs.
        text = await asyncio.to_thread(self._parser.extract_text, content, kind, filename)

        document = await self._document_store.create_document(
            owner_id=owner_id,
            filename=filename,
            mime_type=kind,
            size_bytes=len(content),
        )
        self.start_ingestion(document.id, text)
        logger.info(
            "document_uploaded",
            document_id=document.id,
            owner_id=owner_id,
            filename=filename,
            size_bytes=len(content),
        )
        return document

    def start_ingestion(self, document_id: str, extracted_text: str) -> None:
        """Queue an ingestion pass and return without waiting for it."""
        if not self._worker.running:
            self._worker.start()
        self._worker.submit(document_id, extracted_text)

    async def get_document(self, document_id: str) -> Document:
        document = await self._document_store.get_document(document_id)
        if document is None:
            raise NotFoundError(message=f"Document {document_id} not found")
        return document

    async def list_documents(self, owner_id: str) -> list[Document]:
        """Return the owner's documents, most recent upload first."""
        return await self._document_store.list_documents(owner_id)

    async def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        """Return the document's chunks in index order."""
        await self.get_document(document_id)
        return await self._document_store.get_chunks(document_id)

    async def delete_document(self, document_id: str) -> None:
        """Delete the document with its chunks and vectors.

        Waits for any in-flight ingestion pass of the same document.
        """
        async with self._worker.document_lock(document_id):
            await self._ingestion.delete_document(document_id)
