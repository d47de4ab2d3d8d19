"""Unit tests for DocumentService upload validation and document management."""

from __future__ import annotations

import pytest
import pytest_asyncio

from docurag.models.document import DocumentStatus
from docurag.providers.parser.document_parser import DocumentParser
from docurag.services.document_service import DocumentService
from docurag.services.ingestion.chunker import TextChunker
from docurag.services.ingestion.ingestion_service import IngestionService
from docurag.services.ingestion.worker import IngestionWorker
from docurag.utils.errors import ExtractionError, NotFoundError, StorageError


@pytest_asyncio.fixture
async def documents(document_store, mock_embedding_provider, mock_vector_store):
    ingestion = IngestionService(
        chunker=TextChunker(chunk_size=200, overlap=40),
        embedding_provider=mock_embedding_provider,
        vector_store=mock_vector_store,
        document_store=document_store,
    )
    worker = IngestionWorker(ingestion, document_store, concurrency=1)
    service = DocumentService(
        document_store=document_store,
        parser=DocumentParser(),
        ingestion_service=ingestion,
        worker=worker,
        max_upload_bytes=2048,
    )
    yield service, worker
    await worker.stop()


@pytest.mark.asyncio
class TestUpload:
    async def test_upload_returns_pending_then_completes(
        self, documents, sample_text: str
    ) -> None:
        service, worker = documents

        doc = await service.upload("alice", "treaty.txt", "text/plain", sample_text.encode())

        assert doc.status is DocumentStatus.PENDING
        assert doc.size_bytes == len(sample_text.encode())
        await worker.join()

        final = await service.get_document(doc.id)
        assert final.status is DocumentStatus.COMPLETED
        assert final.chunk_count == len(await service.get_chunks(doc.id))

    async def test_upload_starts_worker_lazily(self, documents) -> None:
        service, worker = documents
        assert worker.running is False

        await service.upload("alice", "a.md", "text/markdown", b"# Heading\n\nBody text.")

        assert worker.running is True
        await worker.join()

    async def test_mime_parameters_stripped(self, documents) -> None:
        service, worker = documents
        doc = await service.upload("alice", "a.txt", "text/plain; charset=utf-8", b"hello")
        assert doc.mime_type == "text/plain"
        await worker.join()

    async def test_oversized_upload_rejected(self, documents, document_store) -> None:
        service, _ = documents

        with pytest.raises(ExtractionError, match="limit"):
            await service.upload("alice", "big.txt", "text/plain", b"x" * 4096)

        assert await document_store.list_documents("alice") == []

    async def test_disallowed_type_rejected(self, documents, document_store) -> None:
        service, _ = documents

        with pytest.raises(ExtractionError, match="Unsupported"):
            await service.upload("alice", "photo.png", "image/png", b"\x89PNG")

        assert await document_store.list_documents("alice") == []

    async def test_unreadable_text_creates_nothing(self, documents, document_store) -> None:
        service, _ = documents

        with pytest.raises(ExtractionError):
            await service.upload("alice", "bad.txt", "text/plain", b"\xff\xfe\xfa")

        assert await document_store.list_documents("alice") == []

    async def test_empty_text_ends_failed(self, documents) -> None:
        service, worker = documents

        doc = await service.upload("alice", "blank.txt", "text/plain", b"   \n\n  ")
        await worker.join()

        final = await service.get_document(doc.id)
        assert final.status is DocumentStatus.FAILED
        assert final.error


    async def test_start_ingestion_for_existing_record(
        self, documents, document_store, sample_text: str
    ) -> None:
        service, worker = documents
        doc = await document_store.create_document(
            owner_id="alice", filename="scan.pdf", mime_type="application/pdf", size_bytes=10
        )

        service.start_ingestion(doc.id, sample_text)
        assert worker.running is True
        await worker.join()

        final = await service.get_document(doc.id)
        assert final.status is DocumentStatus.COMPLETED


@pytest.mark.asyncio
class TestManagement:
    async def test_get_unknown_document(self, documents) -> None:
        service, _ = documents
        with pytest.raises(NotFoundError):
            await service.get_document("missing")
        with pytest.raises(NotFoundError):
            await service.get_chunks("missing")

    async def test_list_documents_scoped_to_owner(self, documents) -> None:
        service, worker = documents
        mine = await service.upload("alice", "a.txt", "text/plain", b"alpha")
        await service.upload("bob", "b.txt", "text/plain", b"bravo")
        await worker.join()

        assert [d.id for d in await service.list_documents("alice")] == [mine.id]

    async def test_delete_removes_rows_and_vectors(
        self, documents, mock_vector_store, sample_text: str
    ) -> None:
        service, worker = documents
        doc = await service.upload("alice", "treaty.txt", "text/plain", sample_text.encode())
        await worker.join()
        assert await mock_vector_store.list_ids("rag_documents", doc.id)

        await service.delete_document(doc.id)

        with pytest.raises(NotFoundError):
            await service.get_document(doc.id)
        assert await mock_vector_store.list_ids("rag_documents", doc.id) == []

    async def test_delete_unknown_document(self, documents) -> None:
        service, _ = documents
        with pytest.raises(NotFoundError):
            await service.delete_document("missing")

    async def test_delete_sweeps_vectors_left_by_failed_cleanup(
        self, documents, document_store, mock_vector_store, sample_text: str
    ) -> None:
        service, worker = documents

        async def refuse_commit(document_id, records):  # noqa: ANN001
            raise StorageError(message="disk full")

        original_commit = document_store.complete_document
        document_store.complete_document = refuse_commit
        mock_vector_store.fail_delete = True
        doc = await service.upload("alice", "treaty.txt", "text/plain", sample_text.encode())
        await worker.join()

        assert (await service.get_document(doc.id)).status is DocumentStatus.FAILED
        assert await document_store.get_chunks(doc.id) == []
        assert await mock_vector_store.list_ids("rag_documents", doc.id)

        document_store.complete_document = original_commit
        mock_vector_store.fail_delete = False
        await service.delete_document(doc.id)

        assert await mock_vector_store.list_ids("rag_documents", doc.id) == []
