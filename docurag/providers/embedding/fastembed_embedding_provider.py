"""Local ONNX-based embedding provider using fastembed.

Runs on CPU through ONNX Runtime with no PyTorch dependency.  Install the
``fastembed`` extra to use it.  The default model,
``BAAI/bge-small-en-v1.5``, produces 384-dimension vectors and matches the
default ``embedding_dimension``.
"""

from __future__ import annotations

import asyncio

import structlog

from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.providers.embedding.validation import validate_embeddings
from docurag.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "intfloat/multilingual-e5-large": 1024,
}

_DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"
_BATCH_LIMIT = 64


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by fastembed (ONNX Runtime).

    The model is loaded on first use; the first run downloads the weights.
    """

    def __init__(self, model_name: str | None = None, dimension: int | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = dimension or _MODEL_DIMENSIONS.get(self._model_name, 384)
        self._model = None  # Lazy-loaded

    def _load_model(self) -> None:
        if self._model is not None:
            return
        try:
            from fastembed import TextEmbedding

            logger.info("loading_fastembed_model", model=self._model_name)
            self._model = TextEmbedding(model_name=self._model_name)
            logger.info(
                "fastembed_model_loaded",
                model=self._model_name,
                dimension=self._dimension,
            )
        except Exception as exc:
            raise EmbeddingError(
                message=f"Failed to load fastembed model '{self._model_name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        self._load_model()
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_LIMIT):
            batch = texts[start : start + _BATCH_LIMIT]
            # fastembed yields numpy arrays
            vectors.extend(v.tolist() for v in self._model.embed(batch))
        return vectors

    async def embed(self, text: str) -> list[float]:
        result = await self.embed_batch([text])
        return result[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = await asyncio.to_thread(self._embed_sync, texts)
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                message=f"Fastembed embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return validate_embeddings(vectors, len(texts), self._dimension, self.get_provider_name())

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if fastembed is installed."""
        try:
            import fastembed  # noqa: F401

            return True
        except ImportError:
            return False
