"""Abstract base class for text-embedding providers.

Implementations turn text into fixed-length float vectors for the vector
index.  Concrete adapters live in ``docurag/providers/embedding/``:

    HashEmbeddingProvider       -- deterministic offline vectors (default)
    OpenAIEmbeddingProvider     -- any OpenAI-compatible embeddings endpoint
    FastEmbedEmbeddingProvider  -- local ONNX models via fastembed
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single string (typically a user query).

        Parameters
        ----------
        text:
            The text to embed.

        Returns
        -------
        list[float]
            A vector of length :meth:`get_dimension`.

        Raises
        ------
        docurag.utils.errors.EmbeddingError
            If the backend fails or returns a malformed vector.
        """

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many strings in one logical call.

        Parameters
        ----------
        texts:
            Strings to embed.  Implementations split the list internally if
            the backend has a per-request limit.

        Returns
        -------
        list[list[float]]
            One vector per input, positionally aligned with *texts*.

        Raises
        ------
        docurag.utils.errors.EmbeddingError
            If any part of the batch fails.  A partial result is never
            returned.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the fixed length of every vector this provider produces."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider is configured and can be called."""
