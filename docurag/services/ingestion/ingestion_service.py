"""Orchestrator for one document ingestion pass.

Pipeline stages: **mark processing -> chunk -> embed -> index -> record**.

:class:`IngestionService` coordinates the chunker, the embedding provider,
the vector store and the document store without any of them knowing about
each other.  Once step 1 has run, a pass ends with the document COMPLETED
or FAILED:

    1. IDocumentStore.mark_processing   -- PENDING/FAILED/PROCESSING -> PROCESSING
    2. TextChunker                      -- boundary-aligned overlapping segments
    3. IEmbeddingProvider.embed_batch   -- one call for every segment
    4. IVectorStoreProvider.upsert      -- ids "{document_id}_chunk_{i}"
    5. IDocumentStore.complete_document -- chunk rows + COMPLETED, one transaction

Any error after step 1 is recorded as FAILED with a readable message.  If
step 1 itself cannot run, the document keeps its status so that no
transition skips PROCESSING.

When a failure or cancellation happens after vectors may have been written
(steps 4 and 5), the ids of this pass are deleted again so the index does
not keep entries for a document with no chunk rows.

Re-running a pass is safe: vector ids are stable, upsert overwrites, and
step 5 replaces any chunk rows left by an earlier attempt.
"""

from __future__ import annotations

import asyncio
import time
import uuid

import structlog

from docurag.interfaces.document_store import IDocumentStore
from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.interfaces.vector_store_provider import IVectorStoreProvider
from docurag.models.document import ChunkRecord, DocumentStatus, vector_id
from docurag.models.rag import IngestionResult, VectorEntry
from docurag.services.ingestion.chunker import TextChunker
from docurag.utils.errors import DocuRagError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)

NO_TEXT_ERROR = "Document contains no extractable text"


class IngestionService:
    """Runs ingestion passes and document deletion.

    Parameters
    ----------
    chunker:
        Splits extracted text into overlapping segments.
    embedding_provider:
        Produces one vector per segment.
    vector_store:
        Stores the vectors for similarity search.
    document_store:
        Owns document status and chunk rows.
    collection:
        Vector-store collection that holds every document's entries.
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        document_store: IDocumentStore,
        collection: str = "rag_documents",
    ) -> None:
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._document_store = document_store
        self._collection = collection

    @property
    def collection(self) -> str:
        return self._collection

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, document_id: str, text: str) -> IngestionResult:
        """Run one full pass for *document_id*.  Never raises.

        Returns
        -------
        IngestionResult
            Final status and chunk count.  ``status`` is None when the
            document no longer exists; ``skipped`` is True when it was
            already COMPLETED.
        """
        started = time.monotonic()
        log = logger.bind(document_id=document_id)

        try:
            existing = await self._document_store.get_document(document_id)
        except Exception as exc:
            return _not_started(document_id, None, f"Could not read document: {exc}")
        if existing is None:
            log.warning("ingestion_document_missing")
            return IngestionResult(document_id=document_id, error="Document not found")
        if existing.status is DocumentStatus.COMPLETED:
            log.info("ingestion_skipped_completed", chunk_count=existing.chunk_count)
            return IngestionResult(
                document_id=document_id,
                status=DocumentStatus.COMPLETED,
                chunks_created=existing.chunk_count,
                skipped=True,
            )

        try:
            await self._document_store.mark_processing(document_id)
        except NotFoundError:
            log.warning("ingestion_document_missing")
            return IngestionResult(document_id=document_id, error="Document not found")
        except Exception as exc:
            return _not_started(document_id, existing.status, f"Could not start processing: {exc}")

        written_ids: list[str] = []
        try:
            segments = self._chunker.chunk(text or "")
            if not segments:
                return await self._fail(document_id, NO_TEXT_ERROR, started)
            log.info("ingestion_chunked", chunks=len(segments))

            vectors = await self._embedding_provider.embed_batch(segments)
            if len(vectors) != len(segments):
                return await self._fail(
                    document_id,
                    f"Embedding count mismatch: {len(vectors)} vectors for {len(segments)} chunks",
                    started,
                )

            entries = [
                VectorEntry(
                    id=vector_id(document_id, index),
                    vector=vector,
                    document_id=document_id,
                    chunk_index=index,
                    text=segment,
                )
                for index, (segment, vector) in enumerate(zip(segments, vectors, strict=True))
            ]
            # From here on a failure may leave vectors behind.
            written_ids = [entry.id for entry in entries]
            await self._vector_store.upsert(self._collection, entries)

            records = [
                ChunkRecord(
                    id=uuid.uuid4().hex,
                    document_id=document_id,
                    chunk_index=entry.chunk_index,
                    content=entry.text,
                    vector_ref=entry.id,
                )
                for entry in entries
            ]
            document = await self._document_store.complete_document(document_id, records)
        except asyncio.CancelledError:
            # The worker marks the document FAILED after cancelling us.
            await self._discard_interrupted(document_id, written_ids)
            raise
        except Exception as exc:
            await self._remove_vectors(document_id, written_ids)
            return await self._fail(document_id, _describe(exc), started)

        elapsed = time.monotonic() - started
        log.info(
            "ingestion_complete",
            chunks=document.chunk_count,
            elapsed_s=round(elapsed, 3),
        )
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.COMPLETED,
            chunks_created=document.chunk_count,
            ingestion_time=elapsed,
        )

    async def delete_document(self, document_id: str) -> None:
        """Remove a document's vectors, then its row (chunk rows cascade).

        Vector ids come from the chunk rows and from the index itself, so
        entries left behind by a failed or interrupted pass are removed too.
        The two stores are not updated atomically.  If the vector delete
        fails, nothing else is touched and the call can be retried.  If the
        process dies between the two deletes, the vectors are already gone
        and re-running the delete finishes the job.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        IndexWriteError
            If the vector-store delete fails.
        """
        document = await self._document_store.get_document(document_id)
        if document is None:
            raise NotFoundError(message=f"Document {document_id} not found")

        chunks = await self._document_store.get_chunks(document_id)
        refs = [chunk.vector_ref for chunk in chunks]
        indexed = await self._vector_store.list_ids(self._collection, document_id)
        known = set(refs)
        refs.extend(ref for ref in indexed if ref not in known)
        if refs:
            await self._vector_store.delete(self._collection, refs)

        await self._document_store.delete_document(document_id)
        logger.info("document_deleted", document_id=document_id, vectors_removed=len(refs))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _discard_interrupted(self, document_id: str, ids: list[str]) -> None:
        # The commit may have landed before the cancellation did.
        try:
            current = await self._document_store.get_document(document_id)
        except Exception as exc:
            logger.error("ingestion_interrupt_check_failed", document_id=document_id, error=str(exc))
            current = None
        if current is not None and current.status is DocumentStatus.COMPLETED:
            return
        await self._remove_vectors(document_id, ids)

    async def _remove_vectors(self, document_id: str, ids: list[str]) -> None:
        if not ids:
            return
        try:
            await self._vector_store.delete(self._collection, ids)
        except Exception as exc:
            logger.error(
                "ingestion_vector_cleanup_failed",
                document_id=document_id,
                vectors=len(ids),
                error=str(exc),
            )

    async def _fail(self, document_id: str, message: str, started: float) -> IngestionResult:
        elapsed = time.monotonic() - started
        try:
            await self._document_store.fail_document(document_id, message)
        except Exception as exc:
            logger.error(
                "ingestion_fail_record_failed",
                document_id=document_id,
                error=message,
                record_error=str(exc),
            )
        logger.warning("ingestion_failed", document_id=document_id, error=message)
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.FAILED,
            error=message,
            ingestion_time=elapsed,
        )


def _describe(exc: Exception) -> str:
    if isinstance(exc, DocuRagError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


def _not_started(
    document_id: str, status: DocumentStatus | None, message: str
) -> IngestionResult:
    # The row is left as it was; startup recovery fails it once its lease runs out.
    logger.error("ingestion_not_started", document_id=document_id, error=message)
    return IngestionResult(document_id=document_id, status=status, error=message)
