"""Document and chunk records for the ingestion pipeline.

A :class:`Document` tracks one uploaded file through the status machine::

    PENDING --> PROCESSING --> COMPLETED
                    |    ^
                    v    |
                  FAILED-+

``FAILED -> PROCESSING`` is a re-submission; ``PROCESSING -> PROCESSING``
happens when a job is redelivered.  ``chunk_count > 0`` holds exactly when
the status is COMPLETED, and ``error`` is set exactly when it is FAILED.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentStatus(str, Enum):  # noqa: UP042
    """Processing state of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# Legal (from, to) status pairs.  The stores refuse anything else.
ALLOWED_TRANSITIONS: frozenset[tuple[DocumentStatus, DocumentStatus]] = frozenset(
    {
        (DocumentStatus.PENDING, DocumentStatus.PROCESSING),
        (DocumentStatus.PENDING, DocumentStatus.FAILED),
        (DocumentStatus.PROCESSING, DocumentStatus.PROCESSING),
        (DocumentStatus.PROCESSING, DocumentStatus.COMPLETED),
        (DocumentStatus.PROCESSING, DocumentStatus.FAILED),
        (DocumentStatus.FAILED, DocumentStatus.PROCESSING),
        (DocumentStatus.FAILED, DocumentStatus.FAILED),
    }
)


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """Return True if *current* may move to *target*."""
    return (current, target) in ALLOWED_TRANSITIONS


class Document(BaseModel):
    """An uploaded document and its processing state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque unique document identifier.")
    owner_id: str = Field(description="Caller-supplied owner (user) identifier.")
    filename: str = Field(description="Original file name as uploaded.")
    mime_type: str = Field(description="Declared MIME type of the upload.")
    size_bytes: int = Field(default=0, ge=0, description="Size of the raw upload in bytes.")
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    chunk_count: int = Field(default=0, ge=0, description="Chunks indexed for this document.")
    error: str | None = Field(default=None, description="Failure reason when FAILED.")
    uploaded_at: datetime = Field(description="UTC time the document record was created.")
    processed_at: datetime | None = Field(
        default=None, description="UTC time ingestion last reached COMPLETED or FAILED."
    )

    @model_validator(mode="after")
    def _check_status_fields(self) -> Document:
        completed = self.status is DocumentStatus.COMPLETED
        if completed != (self.chunk_count > 0):
            raise ValueError("chunk_count must be positive exactly when status is COMPLETED")
        if (self.status is DocumentStatus.FAILED) != (self.error is not None):
            raise ValueError("error must be set exactly when status is FAILED")
        return self


class ChunkRecord(BaseModel):
    """Relational record of one indexed chunk.

    ``vector_ref`` is the id of the matching vector-store entry, so a
    document's vectors can be deleted without querying the index.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique chunk record identifier.")
    document_id: str
    chunk_index: int = Field(ge=0, description="0-based position within the document.")
    content: str
    vector_ref: str = Field(description="Vector-store entry id for this chunk.")


def vector_id(document_id: str, chunk_index: int) -> str:
    """Return the stable vector-store id for a document chunk."""
    return f"{document_id}_chunk_{chunk_index}"
