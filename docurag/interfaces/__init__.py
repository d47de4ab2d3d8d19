"""Abstract interfaces for every collaborator the pipelines depend on.

Services receive these through their constructors; concrete adapters in
``docurag/providers/`` are chosen in :mod:`docurag.main`.

    Interface              ->  Concrete implementations
    ----------------------------------------------------------------
    IEmbeddingProvider     ->  HashEmbeddingProvider, OpenAIEmbeddingProvider,
                               FastEmbedEmbeddingProvider
    IVectorStoreProvider   ->  ChromaDBProvider
    ILLMProvider           ->  OpenAILLMProvider, OllamaLLMProvider
    IDocumentStore         ->  SQLiteDocumentStore
    IHistoryStore          ->  SQLiteHistoryStore
    IDocumentParser        ->  DocumentParser
"""

from docurag.interfaces.document_parser import IDocumentParser
from docurag.interfaces.document_store import IDocumentStore
from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.interfaces.history_store import IHistoryStore
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IDocumentParser",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IHistoryStore",
    "ILLMProvider",
    "IVectorStoreProvider",
]
