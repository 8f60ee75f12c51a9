"""
Detection algorithms package.
"""

from .base import ClusteringAlgorithm, AlgorithmRegistry, algorithm_registry
from .sha256_detector import SHA256Detector, ExactBucket
from .threshold_clustering import ThresholdClusterer, cluster_by_threshold
from .hierarchical_clustering import HierarchicalClusterer, DistanceMatrixCache, cluster_hierarchical

__all__ = [
    'ClusteringAlgorithm', 'AlgorithmRegistry', 'algorithm_registry',
    'SHA256Detector', 'ExactBucket',
    'ThresholdClusterer', 'cluster_by_threshold',
    'HierarchicalClusterer', 'DistanceMatrixCache', 'cluster_hierarchical',
]
