"""
Greedy single-pass threshold clustering.
"""

from typing import Hashable, List, Sequence, Set, Union

from .base import ClusteringAlgorithm, EmbeddingItem, algorithm_registry, unpack_items
from ..errors import InvalidConfigError
from ..models import (
    ClusteringMethod, EmbeddingType, SimilarityCluster, SimilarityMetric
)
from ..vectors import similarity

DEFAULT_THRESHOLD = 0.9


def parse_metric(metric: Union[SimilarityMetric, str]) -> SimilarityMetric:
    """Accept a metric enum or its string value."""
    if isinstance(metric, SimilarityMetric):
        return metric
    try:
        return SimilarityMetric(metric)
    except ValueError:
        raise InvalidConfigError(
            f"Unknown similarity metric {metric!r}, expected one of "
            f"{[m.value for m in SimilarityMetric]}"
        ) from None


def cluster_by_threshold(items: Sequence[EmbeddingItem],
                         threshold: float = DEFAULT_THRESHOLD,
                         metric: Union[SimilarityMetric, str] = SimilarityMetric.COSINE
                         ) -> List[SimilarityCluster]:
    """
    Group embeddings whose similarity to a cluster anchor reaches ``threshold``.

    Items are visited in input order. Each unassigned item becomes the anchor
    of a new cluster and absorbs every later unassigned item with
    ``similarity(anchor, item) >= threshold``. Earlier items therefore win:
    the result depends on input order. Singleton clusters are discarded, but
    every anchor still consumes a cluster id.

    Args:
        items: ``(id, vector)`` pairs; ids must be unique
        threshold: Minimum similarity to join an anchor's cluster
        metric: Cosine, or Euclidean scaled to ``1 - d / sqrt(dimension)``

    Returns:
        Clusters with two or more members, in anchor order

    Raises:
        EmptyInputError: If ``items`` is empty
        DimensionMismatchError: If vectors differ in length
        InvalidConfigError: If ``metric`` is unknown
    """
    metric = parse_metric(metric)
    ids, matrix = unpack_items(items)

    clusters = []
    assigned: Set[Hashable] = set()
    next_cluster_id = 0

    for i, anchor_id in enumerate(ids):
        if anchor_id in assigned:
            continue

        members = [anchor_id]
        assigned.add(anchor_id)
        cluster_id = next_cluster_id
        next_cluster_id += 1

        for j in range(i + 1, len(ids)):
            if ids[j] in assigned:
                continue
            if similarity(matrix[i], matrix[j], metric) >= threshold:
                members.append(ids[j])
                assigned.add(ids[j])

        if len(members) > 1:
            clusters.append(SimilarityCluster(cluster_id=cluster_id, members=members, threshold=threshold))

    return clusters


class ThresholdClusterer(ClusteringAlgorithm):
    """Threshold clustering with per-type thresholds taken from the config."""

    method = ClusteringMethod.THRESHOLD

    def cluster(self, items: Sequence[EmbeddingItem],
                embedding_type: EmbeddingType) -> List[SimilarityCluster]:
        return cluster_by_threshold(
            items,
            threshold=self.config.threshold_for(embedding_type),
            metric=self.config.metric,
        )

    def get_algorithm_name(self) -> str:
        return "ThresholdClusterer"

    def group_similarity(self, cluster: SimilarityCluster, embedding_type: EmbeddingType) -> float:
        """Threshold groups report the threshold they were built with."""
        if cluster.threshold is not None:
            return cluster.threshold
        return self.config.threshold_for(embedding_type)


# Register the algorithm
algorithm_registry.register(ThresholdClusterer)
