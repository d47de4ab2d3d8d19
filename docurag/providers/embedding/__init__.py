"""Embedding provider implementations.

    HashEmbeddingProvider       -- feature hashing, offline, default.
    OpenAIEmbeddingProvider     -- OpenAI-compatible ``/embeddings`` APIs.
    FastEmbedEmbeddingProvider  -- local ONNX models; needs the optional
                                   ``fastembed`` extra and is imported
                                   directly where used.
"""

from docurag.providers.embedding.hash_embedding_provider import HashEmbeddingProvider
from docurag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashEmbeddingProvider", "OpenAIEmbeddingProvider"]
