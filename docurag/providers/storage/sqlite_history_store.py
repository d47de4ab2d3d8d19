"""SQLite-backed conversation history.

Turns are append-only rows keyed by an AUTOINCREMENT integer, so ``id``
order is insertion order.  ``context_refs`` is stored as a JSON array.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from docurag.interfaces.history_store import IHistoryStore
from docurag.models.chat import ChatTurn, NewChatTurn
from docurag.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docurag.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS chat_turns (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id       TEXT    NOT NULL,
    role          TEXT    NOT NULL,
    content       TEXT    NOT NULL,
    context_refs  TEXT    NOT NULL DEFAULT '[]',
    created_at    TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chat_turns_user ON chat_turns(user_id, id);",
]


class SQLiteHistoryStore(IHistoryStore):
    """SQLite persistence for per-user chat turns."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the chat_turns table and index if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except aiosqlite.Error as exc:
            raise self._wrap(exc) from exc
        logger.info("history_db_initialized", path=str(self._db_path))

    async def append(self, turns: list[NewChatTurn]) -> list[ChatTurn]:
        """Insert all *turns* in one transaction and return them with ids."""
        if not turns:
            return []

        created_at = datetime.now(timezone.utc)
        stored: list[ChatTurn] = []
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                try:
                    for turn in turns:
                        cursor = await db.execute(
                            "INSERT INTO chat_turns "
                            "(user_id, role, content, context_refs, created_at) "
                            "VALUES (?, ?, ?, ?, ?)",
                            (
                                turn.user_id,
                                turn.role.value,
                                turn.content,
                                json.dumps(turn.context_refs),
                                created_at.isoformat(),
                            ),
                        )
                        stored.append(
                            ChatTurn(
                                id=cursor.lastrowid,
                                user_id=turn.user_id,
                                role=turn.role,
                                content=turn.content,
                                context_refs=list(turn.context_refs),
                                created_at=created_at,
                            )
                        )
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise self._wrap(exc) from exc

        logger.info("history_appended", user_id=turns[0].user_id, turns=len(stored))
        return stored

    async def recent(self, user_id: str, limit: int) -> list[ChatTurn]:
        """Return the newest *limit* turns, re-ordered oldest first."""
        if limit <= 0:
            return []
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    "SELECT id, user_id, role, content, context_refs, created_at "
                    "FROM chat_turns WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                    (user_id, limit),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise self._wrap(exc) from exc

        turns = [
            ChatTurn(
                id=r["id"],
                user_id=r["user_id"],
                role=r["role"],
                content=r["content"],
                context_refs=json.loads(r["context_refs"] or "[]"),
                created_at=r["created_at"],
            )
            for r in rows
        ]
        turns.reverse()
        return turns

    async def clear(self, user_id: str) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute("DELETE FROM chat_turns WHERE user_id = ?", (user_id,))
                await db.commit()
                removed = cursor.rowcount
        except aiosqlite.Error as exc:
            raise self._wrap(exc) from exc
        logger.info("history_cleared", user_id=user_id, removed=removed)
        return removed

    def get_provider_name(self) -> str:
        return "sqlite_history"

    def _wrap(self, exc: aiosqlite.Error) -> StorageError:
        return StorageError(
            message=f"SQLite history store error: {exc}",
            provider_name=self.get_provider_name(),
        )
