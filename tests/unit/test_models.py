"""Unit tests for the Pydantic models and the document status machine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from docurag.models.chat import ChatMessage, ChatRole, Source
from docurag.models.document import (
    ALLOWED_TRANSITIONS,
    ChunkRecord,
    Document,
    DocumentStatus,
    can_transition,
    vector_id,
)
from docurag.models.rag import IngestionResult, RetrievedEntry, VectorEntry

_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _document(**overrides) -> Document:
    fields = {
        "id": "doc-1",
        "owner_id": "alice",
        "filename": "notes.txt",
        "mime_type": "text/plain",
        "uploaded_at": _NOW,
    }
    fields.update(overrides)
    return Document(**fields)


class TestDocumentStatusMachine:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DocumentStatus.PENDING, DocumentStatus.PROCESSING),
            (DocumentStatus.PROCESSING, DocumentStatus.COMPLETED),
            (DocumentStatus.PROCESSING, DocumentStatus.FAILED),
            (DocumentStatus.FAILED, DocumentStatus.PROCESSING),
            (DocumentStatus.PROCESSING, DocumentStatus.PROCESSING),
        ],
    )
    def test_allowed(self, current: DocumentStatus, target: DocumentStatus) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (DocumentStatus.PENDING, DocumentStatus.COMPLETED),
            (DocumentStatus.COMPLETED, DocumentStatus.PROCESSING),
            (DocumentStatus.COMPLETED, DocumentStatus.FAILED),
            (DocumentStatus.FAILED, DocumentStatus.COMPLETED),
            (DocumentStatus.COMPLETED, DocumentStatus.PENDING),
        ],
    )
    def test_refused(self, current: DocumentStatus, target: DocumentStatus) -> None:
        assert not can_transition(current, target)

    def test_completed_is_terminal(self) -> None:
        assert not any(current is DocumentStatus.COMPLETED for current, _ in ALLOWED_TRANSITIONS)

    def test_nothing_returns_to_pending(self) -> None:
        assert not any(target is DocumentStatus.PENDING for _, target in ALLOWED_TRANSITIONS)


class TestDocument:
    def test_defaults(self) -> None:
        doc = _document()
        assert doc.status is DocumentStatus.PENDING
        assert doc.chunk_count == 0
        assert doc.error is None
        assert doc.processed_at is None

    def test_completed_requires_chunks(self) -> None:
        with pytest.raises(ValidationError):
            _document(status=DocumentStatus.COMPLETED, chunk_count=0)
        assert _document(status=DocumentStatus.COMPLETED, chunk_count=3).chunk_count == 3

    def test_chunks_only_when_completed(self) -> None:
        with pytest.raises(ValidationError):
            _document(status=DocumentStatus.PROCESSING, chunk_count=2)

    def test_failed_requires_error(self) -> None:
        with pytest.raises(ValidationError):
            _document(status=DocumentStatus.FAILED)
        with pytest.raises(ValidationError):
            _document(status=DocumentStatus.PENDING, error="stray")

    def test_frozen(self) -> None:
        doc = _document()
        with pytest.raises(ValidationError):
            doc.status = DocumentStatus.FAILED  # type: ignore[misc]

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _document(size_bytes=-1)


class TestChunkAndVectorModels:
    def test_vector_id_format(self) -> None:
        assert vector_id("abc", 0) == "abc_chunk_0"
        assert vector_id("abc", 12) == "abc_chunk_12"

    def test_chunk_index_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            ChunkRecord(id="c", document_id="d", chunk_index=-1, content="x", vector_ref="d_chunk_0")

    def test_vector_entry_metadata(self) -> None:
        entry = VectorEntry(
            id=vector_id("d", 2), vector=[0.1, 0.2], document_id="d", chunk_index=2, text="body"
        )
        assert entry.metadata() == {"document_id": "d", "chunk_index": 2, "text": "body"}

    def test_similarity_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            RetrievedEntry(id="d_chunk_0", document_id="d", chunk_index=0, text="t", similarity_score=1.5)
        with pytest.raises(ValidationError):
            Source(document_id="d", chunk_index=0, text="t", score=-0.1)


class TestChatAndResultModels:
    def test_chat_message_to_openai(self) -> None:
        message = ChatMessage(role=ChatRole.ASSISTANT, content="hi")
        assert message.to_openai() == {"role": "assistant", "content": "hi"}

    def test_ingestion_result_defaults(self) -> None:
        result = IngestionResult(document_id="d")
        assert result.status is None
        assert result.chunks_created == 0
        assert result.skipped is False
        assert result.ingestion_time == 0.0
