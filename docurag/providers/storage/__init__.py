"""Relational storage adapters (SQLite via aiosqlite)."""

from docurag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docurag.providers.storage.sqlite_history_store import SQLiteHistoryStore

__all__ = ["SQLiteDocumentStore", "SQLiteHistoryStore"]
