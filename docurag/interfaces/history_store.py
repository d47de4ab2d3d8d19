"""Abstract base class for per-user conversation history."""

from __future__ import annotations

from abc import ABC, abstractmethod

from docurag.models.chat import ChatTurn, NewChatTurn


class IHistoryStore(ABC):
    """Contract for append-only chat history persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def append(self, turns: list[NewChatTurn]) -> list[ChatTurn]:
        """Persist *turns* in one write, preserving their order.

        Either every turn is stored or none is.

        Raises
        ------
        docurag.utils.errors.StorageError
            If the write fails.
        """

    @abstractmethod
    async def recent(self, user_id: str, limit: int) -> list[ChatTurn]:
        """Return the last *limit* turns for *user_id*, oldest first."""

    @abstractmethod
    async def clear(self, user_id: str) -> int:
        """Delete all turns for *user_id* and return how many were removed."""
