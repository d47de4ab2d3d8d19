"""Deterministic, offline embedding provider.

Uses the feature-hashing trick: every lower-cased word token is hashed to
a vector slot and a sign, the counts are accumulated and the result is
L2-normalised.  Texts that share vocabulary land close together under
cosine similarity, which is enough for development, tests and demos
without a model download or API key.  Text with no word tokens falls back
to a SHAKE-256 derived vector so every input still gets a unit vector.
"""

from __future__ import annotations

import hashlib
import math
import re

import structlog

from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.providers.embedding.validation import validate_embeddings
from docurag.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_DEFAULT_DIMENSION = 384


class HashEmbeddingProvider(IEmbeddingProvider):
    """Feature-hashing embedder with a fixed dimensionality."""

    def __init__(self, dimension: int = _DEFAULT_DIMENSION) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = [self._vectorize(text) for text in texts]
        except (TypeError, AttributeError) as exc:
            raise EmbeddingError(
                message=f"Cannot embed non-text input: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("hash_embedding_batch", batch_size=len(texts), dimension=self._dimension)
        return validate_embeddings(vectors, len(texts), self._dimension, self.get_provider_name())

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hash"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            # No tokens, or all collisions cancelled out.
            raw = hashlib.shake_256(text.encode("utf-8")).digest(self._dimension * 2)
            vector = [
                int.from_bytes(raw[i : i + 2], "big") / 32767.5 - 1.0
                for i in range(0, len(raw), 2)
            ]
            norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]
