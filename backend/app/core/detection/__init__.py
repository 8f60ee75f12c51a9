"""
Core duplicate detection engine module.
"""

from .engine import DuplicateDetectionEngine, GroupAssembler, assemble_duplicate_groups
from .algorithms import (
    ClusteringAlgorithm, cluster_by_threshold, cluster_hierarchical, DistanceMatrixCache
)
from .models import (
    DuplicateGroup, FileRecord, FileEmbedding, SimilarityCluster, DetectionConfig,
    DetectionResults, EmbeddingType, GroupType, KeepStrategy, SimilarityMetric, ClusteringMethod
)
from .hashing import compute_exact_hash, compute_content_hash, compute_perceptual_hash
from .vectors import cosine_similarity, euclidean_distance, normalize
from .errors import (
    DetectionError, DimensionMismatchError, InvalidKeepCandidateError, EmptyInputError,
    InvalidEmbeddingError, InvalidConfigError
)
from .preprocessing import PathUtils, TextPreprocessor
from .config import ConfigManager
from .batch import BatchProcessor

__all__ = [
    'DuplicateDetectionEngine',
    'GroupAssembler',
    'assemble_duplicate_groups',
    'ClusteringAlgorithm',
    'cluster_by_threshold',
    'cluster_hierarchical',
    'DistanceMatrixCache',
    'DuplicateGroup',
    'FileRecord',
    'FileEmbedding',
    'SimilarityCluster',
    'DetectionConfig',
    'DetectionResults',
    'EmbeddingType',
    'GroupType',
    'KeepStrategy',
    'SimilarityMetric',
    'ClusteringMethod',
    'compute_exact_hash',
    'compute_content_hash',
    'compute_perceptual_hash',
    'cosine_similarity',
    'euclidean_distance',
    'normalize',
    'DetectionError',
    'DimensionMismatchError',
    'InvalidKeepCandidateError',
    'EmptyInputError',
    'InvalidEmbeddingError',
    'InvalidConfigError',
    'PathUtils',
    'TextPreprocessor',
    'ConfigManager',
    'BatchProcessor',
]
