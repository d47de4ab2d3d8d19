"""Conversation and answer models for the retrieval & generation pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):  # noqa: UP042
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """One message sent to the completion service."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str

    def to_openai(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class NewChatTurn(BaseModel):
    """A turn waiting to be appended to history (no id or timestamp yet)."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: ChatRole
    content: str
    context_refs: list[str] = Field(default_factory=list)


class ChatTurn(BaseModel):
    """A persisted history entry.

    ``id`` increases with insertion order; turns are append-only.  User
    turns carry the vector ids that were retrieved for them in
    ``context_refs``; assistant turns carry an empty list.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    role: ChatRole
    content: str
    context_refs: list[str] = Field(default_factory=list)
    created_at: datetime


class Source(BaseModel):
    """A retrieved chunk reported back to the caller with an answer."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    score: float = Field(default=0.0, ge=0.0, le=1.0)


class AnswerResult(BaseModel):
    """The outcome of a batch ``answer`` call."""

    model_config = ConfigDict(frozen=True)

    response_text: str
    sources: list[Source] = Field(default_factory=list)
