"""Document ingestion pipeline.

Stages: **chunk -> embed -> index -> record**.

1. **Chunk** (chunker.py / TextChunker) -- splits extracted text into
   overlapping segments aligned to paragraph, line, sentence or word
   boundaries.
2. **Embed** (via IEmbeddingProvider) -- one batch call per document.
3. **Index** (via IVectorStoreProvider) -- upserts one entry per segment.
4. **Record** (via IDocumentStore) -- chunk rows and COMPLETED status in
   one transaction.

IngestionService runs one pass; IngestionWorker runs passes in the
background with per-document serialisation.
"""

from docurag.services.ingestion.chunker import TextChunker
from docurag.services.ingestion.ingestion_service import IngestionService
from docurag.services.ingestion.worker import IngestionWorker

__all__ = ["IngestionService", "IngestionWorker", "TextChunker"]
