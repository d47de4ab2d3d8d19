"""Vector store implementations (ChromaDB)."""

from docurag.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
