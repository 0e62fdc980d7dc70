"""
Cosine similarity and the ranking policy applied to scored candidates.
"""

import json
from typing import List, Sequence, Union

import numpy as np

from .types import ScoredCandidate


class EmbeddingMismatch(ValueError):
    """Two vectors that should be comparable are not."""
    pass


class DimensionMismatch(EmbeddingMismatch):
    """Vectors of different length were compared."""
    pass


class ModelMismatch(EmbeddingMismatch):
    """Vectors produced by different embedding models were compared."""
    pass


class MalformedStoredVector(ValueError):
    """A persisted vector could not be parsed."""
    pass


class ZeroNormVector(ValueError):
    """A vector with zero magnitude has no direction to compare."""
    pass


class NonFiniteVector(ValueError):
    """A vector holds NaN or infinite values."""
    pass


def require_finite(vector: Sequence[float]) -> np.ndarray:
    """The vector as a float array; raises NonFiniteVector on NaN or infinity."""
    array = np.asarray(vector, dtype=np.float64)
    if not np.all(np.isfinite(array)):
        raise NonFiniteVector("Vector contains NaN or infinite values")
    return array


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between two equal-length vectors.

    Raises:
        DimensionMismatch: lengths differ
        NonFiniteVector: either vector holds NaN or infinity
        ZeroNormVector: either vector has zero norm
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    if vec_a.shape != vec_b.shape:
        raise DimensionMismatch(f"Vectors must have same dimensions: {vec_a.size} != {vec_b.size}")

    require_finite(vec_a)
    require_finite(vec_b)

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        raise ZeroNormVector("Cannot compute cosine similarity with a zero vector")

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push the result just outside [-1, 1]
    return max(-1.0, min(1.0, similarity))


def parse_stored_vector(value: Union[str, bytes, Sequence[float]]) -> np.ndarray:
    """
    Decode a persisted embedding into a 1-D float array.

    Raises:
        MalformedStoredVector: not JSON, not a flat list of finite numbers, or empty
    """
    if value is None:
        raise MalformedStoredVector("stored vector is missing")

    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise MalformedStoredVector(f"stored vector is not valid JSON: {e}") from e

    if not isinstance(value, (list, tuple, np.ndarray)):
        raise MalformedStoredVector(f"stored vector has unexpected type {type(value).__name__}")

    if any(isinstance(v, (bool, str)) or v is None for v in value):
        raise MalformedStoredVector("stored vector contains non-numeric entries")

    try:
        vector = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise MalformedStoredVector(f"stored vector contains non-numeric entries: {e}") from e

    if vector.ndim != 1 or vector.size == 0:
        raise MalformedStoredVector("stored vector must be a non-empty flat list")

    if not np.all(np.isfinite(vector)):
        raise MalformedStoredVector("stored vector contains NaN or infinite values")

    return vector


def rank_candidates(scored: List[ScoredCandidate], min_similarity: float = 0.7,
                    limit: int = 10) -> List[ScoredCandidate]:
    """
    Keep candidates scoring at least min_similarity, best first, at most limit.

    The sort is stable, so equal scores keep their order in the candidate set.
    """
    if limit <= 0:
        return []

    kept = [candidate for candidate in scored if candidate.score >= min_similarity]
    kept.sort(key=lambda candidate: candidate.score, reverse=True)
    return kept[:limit]
