"""SQLite-backed document store.

Persists :class:`Document` rows and their chunk records to a local SQLite
database (``data/docurag.db`` by default) through ``aiosqlite``.  Chunk rows
reference their document with ``ON DELETE CASCADE``, so deleting a
document removes its chunks in the same statement.

Status changes are conditional updates (``WHERE status = ?``): if another
writer moved the document first, the update touches no row and a
:class:`StorageError` is raised instead of silently overwriting.

Unfinished documents carry a ``heartbeat_at`` timestamp that the owning
worker refreshes with :meth:`SQLiteDocumentStore.touch`; recovery only
fails rows whose heartbeat has gone stale.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from docurag.interfaces.document_store import IDocumentStore
from docurag.models.document import ChunkRecord, Document, DocumentStatus, can_transition
from docurag.utils.errors import NotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/docurag.db")

_CREATE_DOCUMENTS_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            TEXT    PRIMARY KEY,
    owner_id      TEXT    NOT NULL,
    filename      TEXT    NOT NULL,
    mime_type     TEXT    NOT NULL,
    size_bytes    INTEGER NOT NULL DEFAULT 0,
    status        TEXT    NOT NULL DEFAULT 'PENDING',
    chunk_count   INTEGER NOT NULL DEFAULT 0,
    error         TEXT,
    uploaded_at   TEXT    NOT NULL,
    processed_at  TEXT,
    heartbeat_at  TEXT
);
"""

_CREATE_CHUNKS_SQL = """\
CREATE TABLE IF NOT EXISTS document_chunks (
    id           TEXT    PRIMARY KEY,
    document_id  TEXT    NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index  INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    vector_ref   TEXT    NOT NULL,
    UNIQUE(document_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, uploaded_at);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id, chunk_index);",
]

_DOCUMENT_COLUMNS = (
    "id, owner_id, filename, mime_type, size_bytes, status, "
    "chunk_count, error, uploaded_at, processed_at"
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for documents and chunk records."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                # Cascading deletes need this on every connection.
                await db.execute("PRAGMA foreign_keys = ON")
                yield db
        except aiosqlite.Error as exc:
            raise StorageError(
                message=f"SQLite document store error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create the documents and chunk tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode = WAL")
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await self._add_missing_columns(db)
            await db.execute(_CREATE_CHUNKS_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            return await self._fetch(db, document_id)

    async def list_documents(self, owner_id: str) -> list[Document]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                "WHERE owner_id = ? ORDER BY uploaded_at DESC, rowid DESC",
                (owner_id,),
            )
            rows = await cursor.fetchall()
        return [Document.model_validate(dict(r)) for r in rows]

    async def list_by_status(
        self,
        statuses: list[DocumentStatus],
        stale_before: datetime | None = None,
    ) -> list[Document]:
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE status IN ({placeholders})"
        params: list[str] = [s.value for s in statuses]
        if stale_before is not None:
            sql += " AND COALESCE(heartbeat_at, uploaded_at) <= ?"
            params.append(stale_before.astimezone(timezone.utc).isoformat())
        async with self._connect() as db:
            cursor = await db.execute(sql + " ORDER BY uploaded_at", tuple(params))
            rows = await cursor.fetchall()
        return [Document.model_validate(dict(r)) for r in rows]

    async def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, document_id, chunk_index, content, vector_ref "
                "FROM document_chunks WHERE document_id = ? ORDER BY chunk_index",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [ChunkRecord.model_validate(dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_document(
        self,
        owner_id: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
    ) -> Document:
        document = Document(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            status=DocumentStatus.PENDING,
            uploaded_at=datetime.now(timezone.utc),
        )
        async with self._connect() as db:
            await db.execute(
                "INSERT INTO documents "
                "(id, owner_id, filename, mime_type, size_bytes, status, uploaded_at, heartbeat_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    document.id,
                    document.owner_id,
                    document.filename,
                    document.mime_type,
                    document.size_bytes,
                    document.status.value,
                    document.uploaded_at.isoformat(),
                    document.uploaded_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("document_created", document_id=document.id, owner_id=owner_id)
        return document

    async def mark_processing(self, document_id: str) -> Document:
        async with self._connect() as db:
            current = await self._require(db, document_id)
            self._check_transition(current, DocumentStatus.PROCESSING)
            cursor = await db.execute(
                "UPDATE documents SET status = ?, error = NULL, chunk_count = 0, heartbeat_at = ? "
                "WHERE id = ? AND status = ?",
                (DocumentStatus.PROCESSING.value, _utcnow(), document_id, current.status.value),
            )
            if cursor.rowcount == 0:
                raise self._lost_race(document_id)
            await db.commit()
            return await self._require(db, document_id)

    async def complete_document(self, document_id: str, chunks: list[ChunkRecord]) -> Document:
        """Swap in *chunks* and mark the document COMPLETED in one transaction."""
        if not chunks:
            raise ValueError("A completed document needs at least one chunk")

        async with self._connect() as db:
            current = await self._require(db, document_id)
            self._check_transition(current, DocumentStatus.COMPLETED)
            try:
                await db.execute(
                    "DELETE FROM document_chunks WHERE document_id = ?", (document_id,)
                )
                await db.executemany(
                    "INSERT INTO document_chunks "
                    "(id, document_id, chunk_index, content, vector_ref) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (c.id, c.document_id, c.chunk_index, c.content, c.vector_ref)
                        for c in chunks
                    ],
                )
                cursor = await db.execute(
                    "UPDATE documents SET status = ?, chunk_count = ?, error = NULL, "
                    "processed_at = ? WHERE id = ? AND status = ?",
                    (
                        DocumentStatus.COMPLETED.value,
                        len(chunks),
                        _utcnow(),
                        document_id,
                        current.status.value,
                    ),
                )
                if cursor.rowcount == 0:
                    raise self._lost_race(document_id)
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
            completed = await self._require(db, document_id)

        logger.info("document_completed", document_id=document_id, chunk_count=len(chunks))
        return completed

    async def fail_document(self, document_id: str, error: str) -> Document:
        message = error or "Unknown error"
        async with self._connect() as db:
            current = await self._require(db, document_id)
            self._check_transition(current, DocumentStatus.FAILED)
            try:
                await db.execute(
                    "DELETE FROM document_chunks WHERE document_id = ?", (document_id,)
                )
                cursor = await db.execute(
                    "UPDATE documents SET status = ?, chunk_count = 0, error = ?, "
                    "processed_at = ? WHERE id = ? AND status = ?",
                    (
                        DocumentStatus.FAILED.value,
                        message,
                        _utcnow(),
                        document_id,
                        current.status.value,
                    ),
                )
                if cursor.rowcount == 0:
                    raise self._lost_race(document_id)
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
            failed = await self._require(db, document_id)

        logger.info("document_failed", document_id=document_id, error=message)
        return failed

    async def touch(self, document_ids: list[str]) -> int:
        """Refresh the heartbeat of unfinished documents in *document_ids*."""
        if not document_ids:
            return 0
        placeholders = ", ".join("?" for _ in document_ids)
        async with self._connect() as db:
            cursor = await db.execute(
                f"UPDATE documents SET heartbeat_at = ? WHERE id IN ({placeholders}) "
                "AND status IN (?, ?)",
                (
                    _utcnow(),
                    *document_ids,
                    DocumentStatus.PENDING.value,
                    DocumentStatus.PROCESSING.value,
                ),
            )
            await db.commit()
            return cursor.rowcount

    async def delete_document(self, document_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        logger.info("document_row_deleted", document_id=document_id, deleted=deleted)
        return deleted

    def get_provider_name(self) -> str:
        return "sqlite_documents"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _add_missing_columns(self, db: aiosqlite.Connection) -> None:
        # Databases created before heartbeats existed lack the column.
        cursor = await db.execute("PRAGMA table_info(documents)")
        columns = {row["name"] for row in await cursor.fetchall()}
        if "heartbeat_at" not in columns:
            await db.execute("ALTER TABLE documents ADD COLUMN heartbeat_at TEXT")

    async def _fetch(self, db: aiosqlite.Connection, document_id: str) -> Document | None:
        cursor = await db.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        )
        row = await cursor.fetchone()
        return Document.model_validate(dict(row)) if row else None

    async def _require(self, db: aiosqlite.Connection, document_id: str) -> Document:
        document = await self._fetch(db, document_id)
        if document is None:
            raise NotFoundError(
                message=f"Document {document_id} not found",
                provider_name=self.get_provider_name(),
            )
        return document

    def _check_transition(self, current: Document, target: DocumentStatus) -> None:
        if not can_transition(current.status, target):
            raise StorageError(
                message=(
                    f"Document {current.id} cannot move from "
                    f"{current.status.value} to {target.value}"
                ),
                provider_name=self.get_provider_name(),
            )

    def _lost_race(self, document_id: str) -> StorageError:
        return StorageError(
            message=f"Document {document_id} changed status concurrently",
            provider_name=self.get_provider_name(),
        )
