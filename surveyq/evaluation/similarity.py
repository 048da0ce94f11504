"""Cosine similarity and pairwise similarity matrices over question texts."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import structlog

from surveyq.evaluation.embeddings import EmbeddingProvider

logger = structlog.get_logger(__name__)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Dot product over the product of norms. Zero vectors give 0.0."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


def identity_matrix(n: int) -> list[list[float]]:
    """Fail-soft matrix: every text is only similar to itself."""
    return np.eye(n, dtype=np.float64).tolist()


async def pairwise_similarity_matrix(
    texts: list[str],
    provider: EmbeddingProvider,
) -> list[list[float]]:
    """Embed every text once and return the symmetric n x n similarity matrix.

    ``matrix[i][i]`` is 1.0 by definition. If embeddings are unavailable (or
    any single text fails to embed) the identity matrix is returned, i.e.
    nothing is treated as a duplicate.
    """
    n = len(texts)
    if n == 0:
        return []

    vectors = await provider.embed_many(texts)
    if any(v is None for v in vectors):
        logger.warning("similarity_matrix_fallback_identity", count=n)
        return identity_matrix(n)

    stacked = np.vstack([np.asarray(v, dtype=np.float64) for v in vectors])
    norms = np.linalg.norm(stacked, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    unit = stacked / norms
    matrix = unit @ unit.T
    # Exact symmetry and unit diagonal regardless of float rounding
    matrix = (matrix + matrix.T) / 2.0
    np.fill_diagonal(matrix, 1.0)
    return matrix.tolist()
