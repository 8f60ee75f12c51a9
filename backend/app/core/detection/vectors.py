"""
Vector math primitives for embedding comparison.

All functions are pure. Vectors compared together must have the same length;
a mismatch raises ``DimensionMismatchError``. Zero-norm vectors are a valid
degenerate case: their cosine similarity to anything is 0.
"""

import math
from typing import List, Sequence, Union

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine_similarity

from .errors import DimensionMismatchError
from .models import SimilarityMetric

Vector = Union[Sequence[float], np.ndarray]

# Rows per block when building distance matrices; parallel and sequential
# builds share it so both produce bit-identical matrices.
DISTANCE_BLOCK_SIZE = 64


def _as_array(vector: Vector) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).reshape(-1)


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(a.shape[0], b.shape[0])


def cosine_similarity(a: Vector, b: Vector) -> float:
    """
    Cosine similarity in [-1, 1].

    Args:
        a: First vector
        b: Second vector, same length as ``a``

    Returns:
        Similarity, or 0.0 when either vector has zero norm

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va, vb = _as_array(a), _as_array(b)
    _check_dimensions(va, vb)

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb)) / (norm_a * norm_b)
    return max(-1.0, min(1.0, similarity))


def euclidean_distance(a: Vector, b: Vector) -> float:
    """Euclidean distance, raises ``DimensionMismatchError`` on unequal lengths."""
    va, vb = _as_array(a), _as_array(b)
    _check_dimensions(va, vb)
    return float(np.linalg.norm(va - vb))


def normalize(vector: Vector) -> Vector:
    """Scale to unit length; a zero vector is returned unchanged."""
    v = _as_array(vector)
    norm = float(np.linalg.norm(v))
    if norm == 0.0:
        return vector
    return (v / norm).tolist()


def euclidean_similarity(a: Vector, b: Vector) -> float:
    """``1 - distance / sqrt(dimension)``; 0.0 for empty vectors."""
    distance = euclidean_distance(a, b)
    dimension = len(_as_array(a))
    if dimension == 0:
        return 0.0
    return 1.0 - distance / math.sqrt(dimension)


def similarity(a: Vector, b: Vector, metric: SimilarityMetric = SimilarityMetric.COSINE) -> float:
    """Similarity under the given metric."""
    if metric is SimilarityMetric.EUCLIDEAN:
        return euclidean_similarity(a, b)
    return cosine_similarity(a, b)


def stack_vectors(vectors: Sequence[Vector]) -> np.ndarray:
    """
    Stack vectors into an ``(n, d)`` matrix, checking they share one length.

    Raises:
        DimensionMismatchError: If any vector differs in length from the first
    """
    arrays = [_as_array(v) for v in vectors]
    if not arrays:
        return np.zeros((0, 0), dtype=np.float64)
    for array in arrays[1:]:
        _check_dimensions(arrays[0], array)
    return np.vstack(arrays)


def distance_block(matrix: np.ndarray, start: int, stop: int) -> np.ndarray:
    """Cosine distances between rows ``start:stop`` and every row of ``matrix``."""
    similarities = pairwise_cosine_similarity(matrix[start:stop], matrix)
    return 1.0 - np.clip(similarities, -1.0, 1.0)


def assemble_distance_matrix(blocks: List[np.ndarray]) -> np.ndarray:
    """Join row blocks into a symmetric matrix with a zero diagonal."""
    distances = np.vstack(blocks)
    upper = np.triu(distances, k=1)
    return upper + upper.T


def block_ranges(n: int, block_size: int = DISTANCE_BLOCK_SIZE) -> List[range]:
    return [range(start, min(start + block_size, n)) for start in range(0, n, block_size)]


def distance_matrix(vectors: Sequence[Vector]) -> np.ndarray:
    """
    Symmetric ``n x n`` matrix of ``1 - cosine_similarity``, diagonal 0.

    Zero-norm vectors are at distance 1 from every other vector.
    """
    matrix = stack_vectors(vectors)
    n = matrix.shape[0]
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)
    if matrix.shape[1] == 0:
        # Empty vectors have zero norm
        distances = np.ones((n, n), dtype=np.float64)
        np.fill_diagonal(distances, 0.0)
        return distances
    blocks = [distance_block(matrix, r.start, r.stop) for r in block_ranges(n)]
    return assemble_distance_matrix(blocks)
