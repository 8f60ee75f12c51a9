"""
Base classes and interfaces for clustering algorithms.
"""

from abc import ABC, abstractmethod
from typing import Dict, Hashable, List, Optional, Sequence, Tuple, Type
import logging
import time

import numpy as np

from ..errors import DetectionError, EmptyInputError, InvalidConfigError
from ..models import (
    AlgorithmPerformance, ClusteringMethod, DetectionConfig, EmbeddingType, SimilarityCluster
)
from ..vectors import Vector, stack_vectors

EmbeddingItem = Tuple[Hashable, Vector]


def unpack_items(items: Sequence[EmbeddingItem]) -> Tuple[List[Hashable], np.ndarray]:
    """
    Split ``(id, vector)`` pairs into ids and an ``(n, d)`` matrix.

    Raises:
        EmptyInputError: If there are no items
        DetectionError: If an id occurs twice
        DimensionMismatchError: If vectors differ in length
    """
    if not items:
        raise EmptyInputError("At least one embedding is required for clustering")

    ids = [item_id for item_id, _ in items]
    seen = set()
    for item_id in ids:
        if item_id in seen:
            raise DetectionError(f"Embedding id {item_id!r} occurs more than once")
        seen.add(item_id)

    return ids, stack_vectors([vector for _, vector in items])


class ClusteringAlgorithm(ABC):
    """Abstract base class for embedding clustering algorithms."""

    method: ClusteringMethod

    def __init__(self, config: DetectionConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.performance = AlgorithmPerformance(algorithm_name=self.get_algorithm_name())

    @abstractmethod
    def cluster(self, items: Sequence[EmbeddingItem],
                embedding_type: EmbeddingType) -> List[SimilarityCluster]:
        """
        Cluster embeddings of one family.

        Args:
            items: ``(file_id, vector)`` pairs in input order
            embedding_type: Family the vectors belong to

        Returns:
            Clusters with at least two members, in emission order
        """
        pass

    @abstractmethod
    def get_algorithm_name(self) -> str:
        """Return the name of this algorithm."""
        pass

    @abstractmethod
    def group_similarity(self, cluster: SimilarityCluster, embedding_type: EmbeddingType) -> float:
        """Representative similarity reported for a group built from ``cluster``."""
        pass

    def run_clustering(self, items: Sequence[EmbeddingItem],
                       embedding_type: EmbeddingType) -> List[SimilarityCluster]:
        """
        Run clustering with performance tracking.

        Clusters smaller than ``config.min_cluster_size`` are dropped. Errors
        propagate to the caller.
        """
        start_time = time.time()
        self.performance.items_processed = len(items)

        try:
            self.logger.info(f"{self.get_algorithm_name()}: Clustering {len(items)} "
                             f"{embedding_type.value} embeddings")
            clusters = [
                c for c in self.cluster(items, embedding_type)
                if c.size >= self.config.min_cluster_size
            ]
            self.performance.clusters_found = len(clusters)
            self.logger.info(f"{self.get_algorithm_name()}: Found {len(clusters)} clusters")
            return clusters

        finally:
            end_time = time.time()
            self.performance.execution_time_ms = int((end_time - start_time) * 1000)

    def get_performance_metrics(self) -> AlgorithmPerformance:
        """Get performance metrics for this algorithm."""
        return self.performance

    def reset_performance_metrics(self):
        """Reset performance metrics."""
        self.performance = AlgorithmPerformance(algorithm_name=self.get_algorithm_name())


class AlgorithmRegistry:
    """Registry for managing clustering algorithms."""

    def __init__(self):
        self._algorithms: Dict[ClusteringMethod, Type[ClusteringAlgorithm]] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(self, algorithm_class: type):
        """
        Register a clustering algorithm under its ``method``.

        Args:
            algorithm_class: Class that extends ClusteringAlgorithm
        """
        if not isinstance(algorithm_class, type) or not issubclass(algorithm_class, ClusteringAlgorithm):
            raise ValueError(f"Algorithm must extend ClusteringAlgorithm: {algorithm_class}")

        self._algorithms[algorithm_class.method] = algorithm_class
        self.logger.debug(f"Registered algorithm: {algorithm_class.__name__}")

    def get_algorithm(self, method: ClusteringMethod, config: DetectionConfig,
                      logger: Optional[logging.Logger] = None) -> ClusteringAlgorithm:
        """
        Get an instance of a registered algorithm.

        Raises:
            InvalidConfigError: If no algorithm is registered for ``method``
        """
        algorithm_class = self._algorithms.get(method)
        if algorithm_class is None:
            raise InvalidConfigError(f"No clustering algorithm registered for {method!r}")
        return algorithm_class(config, logger)

    def list_algorithms(self) -> List[ClusteringMethod]:
        """Get list of registered clustering methods."""
        return list(self._algorithms.keys())


# Global algorithm registry
algorithm_registry = AlgorithmRegistry()
