"""Output checks shared by the embedding adapters."""

from __future__ import annotations

import math
from collections.abc import Sequence

from docurag.utils.errors import EmbeddingError


def validate_embeddings(
    vectors: Sequence[Sequence[float]],
    expected_count: int,
    dimension: int,
    provider_name: str,
) -> list[list[float]]:
    """Return *vectors* as plain float lists, or raise if any is malformed.

    A batch is rejected as a whole when the count differs from the number
    of inputs, a vector has the wrong length, or a component is not a
    finite number.
    """
    if len(vectors) != expected_count:
        raise EmbeddingError(
            message=f"Expected {expected_count} embeddings, got {len(vectors)}",
            provider_name=provider_name,
        )

    cleaned: list[list[float]] = []
    for position, vector in enumerate(vectors):
        if len(vector) != dimension:
            raise EmbeddingError(
                message=(
                    f"Embedding {position} has dimension {len(vector)}, "
                    f"expected {dimension}"
                ),
                provider_name=provider_name,
            )
        row: list[float] = []
        for value in vector:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EmbeddingError(
                    message=f"Embedding {position} contains a non-numeric value",
                    provider_name=provider_name,
                )
            as_float = float(value)
            if not math.isfinite(as_float):
                raise EmbeddingError(
                    message=f"Embedding {position} contains a non-finite value",
                    provider_name=provider_name,
                )
            row.append(as_float)
        cleaned.append(row)
    return cleaned
