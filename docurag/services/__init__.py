"""Application services: ingestion, document management and RAG answering."""
