"""Vector-index and ingestion result models.

:class:`VectorEntry` is what the ingestion pipeline writes to the vector
store; :class:`RetrievedEntry` is what a similarity query returns.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from docurag.models.document import DocumentStatus


class VectorEntry(BaseModel):
    """One embedded chunk, ready for upsert.

    Metadata stored alongside the vector is always
    ``{document_id, chunk_index, text}``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description='Stable id, "{document_id}_chunk_{chunk_index}".')
    vector: list[float]
    document_id: str
    chunk_index: int = Field(ge=0)
    text: str

    def metadata(self) -> dict[str, str | int]:
        return {
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "text": self.text,
        }


class RetrievedEntry(BaseModel):
    """A vector-store hit, best first in query results."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    similarity_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Cosine similarity between the query and this entry.",
    )


class IngestionResult(BaseModel):
    """Summary of one ingestion pass, used for logging and the CLI."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus | None = Field(
        default=None, description="Final status, or None when the document was not found."
    )
    chunks_created: int = Field(default=0, ge=0)
    error: str | None = None
    skipped: bool = Field(default=False, description="True when the document was already COMPLETED.")
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")
