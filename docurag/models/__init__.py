"""Pydantic v2 data models shared across docurag.

All models are frozen; state changes produce new instances through the
stores rather than mutation.
"""

from docurag.models.chat import (
    AnswerResult,
    ChatMessage,
    ChatRole,
    ChatTurn,
    NewChatTurn,
    Source,
)
from docurag.models.document import (
    ALLOWED_TRANSITIONS,
    ChunkRecord,
    Document,
    DocumentStatus,
    can_transition,
    vector_id,
)
from docurag.models.rag import IngestionResult, RetrievedEntry, VectorEntry

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AnswerResult",
    "ChatMessage",
    "ChatRole",
    "ChatTurn",
    "ChunkRecord",
    "Document",
    "DocumentStatus",
    "IngestionResult",
    "NewChatTurn",
    "RetrievedEntry",
    "Source",
    "VectorEntry",
    "can_transition",
    "vector_id",
]
