"""
Average-linkage agglomerative clustering over cosine distances.

Every merge step compares all current cluster pairs, and each comparison
averages all cross-cluster distances, so a run costs between O(N^3) and O(N^4).
Callers should batch or pre-filter collections beyond a few hundred items.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple
import logging
import threading

import numpy as np

from .base import ClusteringAlgorithm, EmbeddingItem, algorithm_registry, unpack_items
from ..errors import InvalidConfigError
from ..models import ClusteringMethod, DetectionConfig, EmbeddingType, SimilarityCluster
from ..vectors import distance_matrix

DEFAULT_MAX_CLUSTERS = 10
DEFAULT_MIN_SIMILARITY = 0.8

DistanceBuilder = Callable[[Sequence[np.ndarray]], np.ndarray]


@dataclass
class _WorkingCluster:
    cluster_id: int
    members: List[Hashable]
    indices: List[int]


def average_linkage_distance(first: Sequence[int], second: Sequence[int],
                             distances: np.ndarray) -> float:
    """Mean distance over all index pairs across two clusters; inf if either is empty."""
    if not first or not second:
        return float("inf")
    return float(distances[np.ix_(list(first), list(second))].mean())


def average_intra_similarity(indices: Sequence[int], distances: np.ndarray) -> float:
    """Mean of ``1 - distance`` over all unordered index pairs; 1.0 for a singleton."""
    if len(indices) <= 1:
        return 1.0
    block = distances[np.ix_(list(indices), list(indices))]
    upper = block[np.triu_indices(len(indices), k=1)]
    return float(np.mean(1.0 - upper))


def cluster_hierarchical(items: Sequence[EmbeddingItem],
                         max_clusters: int = DEFAULT_MAX_CLUSTERS,
                         min_similarity: float = DEFAULT_MIN_SIMILARITY,
                         distances: Optional[np.ndarray] = None) -> List[SimilarityCluster]:
    """
    Merge the closest pair of clusters until ``max_clusters`` remain.

    Each item starts as its own cluster (id = input index). While more than
    ``max_clusters`` clusters exist, the pair with the smallest average-linkage
    distance is merged into a cluster with id ``max(existing ids) + 1``. Ties go
    to the first pair found scanning ``(i, j)`` with ``i < j`` over the current
    cluster list. Merging stops early when the best merge's similarity
    ``1 - distance`` falls below ``min_similarity``.

    Args:
        items: ``(id, vector)`` pairs; ids must be unique
        max_clusters: Cluster count at which merging stops
        min_similarity: Quality floor for a merge
        distances: Precomputed ``n x n`` cosine distance matrix for ``items``

    Returns:
        Clusters with two or more members, each with its average intra-cluster similarity

    Raises:
        EmptyInputError: If ``items`` is empty
        DimensionMismatchError: If vectors differ in length
        InvalidConfigError: If ``max_clusters`` < 1 or ``distances`` has the wrong shape
    """
    if max_clusters < 1:
        raise InvalidConfigError(f"max_clusters must be positive, got {max_clusters}")

    ids, matrix = unpack_items(items)
    n = len(ids)
    if distances is None:
        distances = distance_matrix(matrix)
    elif distances.shape != (n, n):
        raise InvalidConfigError(f"Distance matrix shape {distances.shape} does not match {n} items")

    clusters = [_WorkingCluster(cluster_id=i, members=[item_id], indices=[i])
                for i, item_id in enumerate(ids)]

    while len(clusters) > max_clusters:
        min_distance = float("inf")
        merge_i = merge_j = -1

        for i in range(len(clusters)):
            for j in range(i + 1, len(clusters)):
                distance = average_linkage_distance(clusters[i].indices, clusters[j].indices, distances)
                if distance < min_distance:
                    min_distance = distance
                    merge_i, merge_j = i, j

        if merge_i < 0 or 1.0 - min_distance < min_similarity:
            break

        first, second = clusters[merge_i], clusters[merge_j]
        merged = _WorkingCluster(
            cluster_id=max(c.cluster_id for c in clusters) + 1,
            members=first.members + second.members,
            indices=first.indices + second.indices,
        )
        clusters = [c for k, c in enumerate(clusters) if k not in (merge_i, merge_j)]
        clusters.append(merged)

    return [
        SimilarityCluster(
            cluster_id=c.cluster_id,
            members=c.members,
            avg_similarity=average_intra_similarity(c.indices, distances),
        )
        for c in clusters
        if len(c.members) > 1
    ]


class DistanceMatrixCache:
    """
    Reuses distance matrices across calls on the same embedding set.

    Keys are the exact ``(id, vector)`` contents, so any change to an id, a
    value or the item order is a miss. Lookups and inserts hold a lock, so one
    cache can be shared by concurrent runs; a matrix missing for two callers at
    once may be computed twice, and both get identical values.
    """

    def __init__(self, max_entries: int = 8):
        self.max_entries = max_entries
        self._entries: Dict[Tuple, np.ndarray] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(items: Sequence[EmbeddingItem]) -> Tuple:
        return tuple((item_id, tuple(float(v) for v in vector)) for item_id, vector in items)

    def get_or_compute(self, items: Sequence[EmbeddingItem],
                       builder: DistanceBuilder = distance_matrix) -> np.ndarray:
        key = self.make_key(items)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self.hits += 1
                return cached
            self.misses += 1

        distances = builder([vector for _, vector in items])
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                # Evict the oldest entry
                self._entries.pop(next(iter(self._entries)))
            self._entries[key] = distances
        return distances

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class HierarchicalClusterer(ClusteringAlgorithm):
    """Average-linkage clustering configured from ``DetectionConfig``."""

    method = ClusteringMethod.HIERARCHICAL

    def __init__(self, config: DetectionConfig, logger: Optional[logging.Logger] = None,
                 cache: Optional[DistanceMatrixCache] = None,
                 distance_builder: DistanceBuilder = distance_matrix):
        super().__init__(config, logger)
        self.cache = cache
        self.distance_builder = distance_builder

    def cluster(self, items: Sequence[EmbeddingItem],
                embedding_type: EmbeddingType) -> List[SimilarityCluster]:
        distances = None
        if items:
            if self.cache is not None:
                distances = self.cache.get_or_compute(items, self.distance_builder)
            else:
                distances = self.distance_builder([vector for _, vector in items])
        return cluster_hierarchical(
            items,
            max_clusters=self.config.max_clusters,
            min_similarity=self.config.min_similarity,
            distances=distances,
        )

    def get_algorithm_name(self) -> str:
        return "HierarchicalClusterer"

    def group_similarity(self, cluster: SimilarityCluster, embedding_type: EmbeddingType) -> float:
        """Hierarchical groups report their average intra-cluster similarity."""
        if cluster.avg_similarity is None:
            return self.config.min_similarity
        return max(0.0, min(1.0, cluster.avg_similarity))


# Register the algorithm
algorithm_registry.register(HierarchicalClusterer)
