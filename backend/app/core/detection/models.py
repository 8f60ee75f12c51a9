"""
Data models for duplicate detection system.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Mapping, Hashable, Tuple, Union
from datetime import datetime
from enum import Enum

from .errors import InvalidEmbeddingError, InvalidFileRecordError, InvalidKeepCandidateError


class GroupType(Enum):
    """Kinds of duplicate groups reported by the engine."""
    EXACT = "exact"
    TEXT_SIMILAR = "text_similar"
    IMAGE_SIMILAR = "image_similar"


class EmbeddingType(Enum):
    """Embedding families produced by the external model services."""
    TEXT = "text"
    IMAGE = "image"

    @property
    def group_type(self) -> GroupType:
        """Group type used for clusters built from this embedding family."""
        if self is EmbeddingType.TEXT:
            return GroupType.TEXT_SIMILAR
        return GroupType.IMAGE_SIMILAR


class SimilarityMetric(Enum):
    """Similarity metrics supported by threshold clustering."""
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


class ClusteringMethod(Enum):
    """Clustering algorithms available for near-duplicate detection."""
    THRESHOLD = "threshold"
    HIERARCHICAL = "hierarchical"


class KeepStrategy(Enum):
    """Policies for choosing the file to keep in a duplicate group."""
    KEEP_FIRST = "keep_first"
    KEEP_LARGEST = "keep_largest"
    KEEP_NEWEST = "keep_newest"
    MANUAL = "manual"


class FileCategory(Enum):
    """Coarse file classification derived from the file extension."""
    IMAGE = "image"
    TEXT = "text"
    DOCUMENT = "document"
    OTHER = "other"


class Sensitivity(Enum):
    """Similarity threshold presets."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class FileEmbedding:
    """An embedding vector produced by an external model for one file."""

    embedding_type: EmbeddingType
    vector: Tuple[float, ...]
    model: str = "unknown"
    dimension: Optional[int] = None

    def __post_init__(self):
        """Freeze the vector and check it against the declared dimension."""
        vector = tuple(float(v) for v in self.vector)
        object.__setattr__(self, 'vector', vector)
        if self.dimension is None:
            object.__setattr__(self, 'dimension', len(vector))
        elif self.dimension != len(vector):
            raise InvalidEmbeddingError(
                f"{self.embedding_type.value} embedding from model {self.model!r} declares "
                f"dimension {self.dimension} but has {len(vector)} values"
            )


@dataclass(frozen=True)
class FileRecord:
    """Immutable description of one scanned or uploaded file."""

    file_id: Hashable
    file_path: str
    file_name: str
    file_size: int
    sha256: str
    mime_type: Optional[str] = None
    file_type: Optional[FileCategory] = None
    content_hash: Optional[str] = None
    perceptual_hash: Optional[str] = None
    embeddings: Mapping[EmbeddingType, FileEmbedding] = field(default_factory=dict, hash=False)
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def __post_init__(self):
        """Post-initialization validation."""
        if not self.sha256 or not self.sha256.strip():
            raise InvalidFileRecordError(f"File {self.file_id!r} has no exact hash")
        if self.file_size < 0:
            raise InvalidFileRecordError(f"File {self.file_id!r} has negative size {self.file_size}")
        for embedding_type, embedding in self.embeddings.items():
            if embedding.embedding_type is not embedding_type:
                raise InvalidEmbeddingError(
                    f"File {self.file_id!r} stores a {embedding.embedding_type.value} embedding "
                    f"under the {embedding_type.value} key"
                )

    def get_embedding(self, embedding_type: EmbeddingType) -> Optional[FileEmbedding]:
        """Return the embedding of the given type, if the file has one."""
        return self.embeddings.get(embedding_type)


@dataclass
class SimilarityCluster:
    """
    A set of files whose embeddings were clustered together.

    Hierarchical clusters carry ``avg_similarity``; threshold clusters carry the
    ``threshold`` they were built with.
    """

    cluster_id: int
    members: List[Hashable]
    avg_similarity: Optional[float] = None
    threshold: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class ExactMatch:
    """Evidence for an exact group: the shared content digest."""
    sha256: str


@dataclass(frozen=True)
class SimilarityMatch:
    """Evidence for a similarity group: where its cluster came from."""
    embedding_type: EmbeddingType
    cluster_id: int
    method: ClusteringMethod


GroupEvidence = Union[ExactMatch, SimilarityMatch]


@dataclass
class DuplicateGroup:
    """Represents a group of duplicate files."""

    group_id: str
    group_type: GroupType
    similarity: float
    files: List[FileRecord]
    keep_candidate: FileRecord
    evidence: GroupEvidence
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Post-initialization validation."""
        if not self.files:
            raise ValueError("DuplicateGroup must contain at least one file")
        if len(self.files) < 2:
            raise ValueError("DuplicateGroup must contain at least two files")
        if not 0.0 <= self.similarity <= 1.0:
            raise ValueError(f"DuplicateGroup similarity must be in [0, 1], got {self.similarity}")
        if self.keep_candidate.file_id not in self.member_ids:
            raise InvalidKeepCandidateError(self.group_id, self.keep_candidate.file_id, self.member_ids)
        if (self.group_type is GroupType.EXACT) != isinstance(self.evidence, ExactMatch):
            raise ValueError(
                f"DuplicateGroup of type {self.group_type.value} cannot carry "
                f"{type(self.evidence).__name__} evidence"
            )

    @property
    def file_count(self) -> int:
        """Number of files in the group."""
        return len(self.files)

    @property
    def member_ids(self) -> List[Hashable]:
        return [f.file_id for f in self.files]

    @property
    def total_size(self) -> int:
        """Total size of all files in the group."""
        return sum(f.file_size for f in self.files)

    @property
    def potential_savings(self) -> int:
        """Bytes reclaimed by deleting everything except the keep candidate."""
        return self.total_size - self.keep_candidate.file_size

    @property
    def duplicates(self) -> List[FileRecord]:
        """Members that would be removed."""
        return [f for f in self.files if f.file_id != self.keep_candidate.file_id]


@dataclass
class DetectionTotals:
    """Aggregate counters for one detection run."""

    total_files_processed: int
    total_groups: int
    duplicate_files: int
    total_reclaimable: int
    groups_by_type: Dict[str, int] = field(default_factory=dict)


@dataclass
class AssemblyResult:
    """Duplicate groups in discovery order plus their aggregate totals."""

    groups: List[DuplicateGroup]
    totals: DetectionTotals


@dataclass
class AlgorithmPerformance:
    """Performance metrics for a clustering algorithm."""

    algorithm_name: str
    items_processed: int = 0
    execution_time_ms: int = 0
    clusters_found: int = 0

    @property
    def items_per_second(self) -> float:
        """Calculate processing rate."""
        if self.execution_time_ms == 0:
            return 0.0
        return self.items_processed / (self.execution_time_ms / 1000.0)


@dataclass
class DetectionConfig:
    """Configuration for one duplicate detection run."""

    # Similarity clustering
    clustering_method: ClusteringMethod = ClusteringMethod.THRESHOLD
    metric: SimilarityMetric = SimilarityMetric.COSINE
    text_threshold: float = 0.9
    image_threshold: float = 0.9
    max_clusters: int = 10
    min_similarity: float = 0.8
    min_cluster_size: int = 2

    # Embedding contracts
    text_dimension: int = 768
    image_dimension: int = 512

    # Group assembly
    keep_strategy: KeepStrategy = KeepStrategy.KEEP_LARGEST
    exclude_exact_from_similarity: bool = True

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not isinstance(self.clustering_method, ClusteringMethod):
            errors.append(f"clustering_method must be one of {[m.value for m in ClusteringMethod]}")

        if not isinstance(self.metric, SimilarityMetric):
            errors.append(f"metric must be one of {[m.value for m in SimilarityMetric]}")

        if not isinstance(self.keep_strategy, KeepStrategy):
            errors.append(f"keep_strategy must be one of {[s.value for s in KeepStrategy]}")

        if not 0 <= self.text_threshold <= 1:
            errors.append("text_threshold must be between 0 and 1")

        if not 0 <= self.image_threshold <= 1:
            errors.append("image_threshold must be between 0 and 1")

        if not 0 <= self.min_similarity <= 1:
            errors.append("min_similarity must be between 0 and 1")

        if self.max_clusters < 1:
            errors.append("max_clusters must be positive")

        if self.min_cluster_size < 2:
            errors.append("min_cluster_size must be at least 2")

        if self.text_dimension <= 0 or self.image_dimension <= 0:
            errors.append("embedding dimensions must be positive")

        if (self.clustering_method is ClusteringMethod.HIERARCHICAL
                and self.metric is not SimilarityMetric.COSINE):
            errors.append("hierarchical clustering only supports the cosine metric")

        return errors

    def threshold_for(self, embedding_type: EmbeddingType) -> float:
        """Similarity threshold used for the given embedding family."""
        if embedding_type is EmbeddingType.TEXT:
            return self.text_threshold
        return self.image_threshold

    def dimension_for(self, embedding_type: EmbeddingType) -> int:
        """Expected vector length for the given embedding family."""
        if embedding_type is EmbeddingType.TEXT:
            return self.text_dimension
        return self.image_dimension

    @classmethod
    def from_settings(cls, settings: Any, sensitivity: Sensitivity = Sensitivity.MEDIUM,
                      **overrides: Any) -> 'DetectionConfig':
        """
        Build a configuration from application settings.

        Args:
            settings: Settings object (see ``backend.app.core.config.Settings``)
            sensitivity: Threshold preset to pick for text and image similarity
            **overrides: Field values that win over the derived ones

        Returns:
            DetectionConfig instance
        """
        level = sensitivity.value
        values = {
            'text_threshold': getattr(settings, f"text_threshold_{level}"),
            'image_threshold': getattr(settings, f"image_threshold_{level}"),
            'max_clusters': settings.max_clusters,
            'min_similarity': settings.hierarchical_threshold,
            'min_cluster_size': settings.min_cluster_size,
            'text_dimension': settings.text_embedding_dimension,
            'image_dimension': settings.image_embedding_dimension,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class DetectionResults:
    """Results from a duplicate detection run."""

    session_id: str
    groups: List[DuplicateGroup]
    totals: DetectionTotals
    config: DetectionConfig
    detection_time_ms: int
    created_at: datetime = field(default_factory=datetime.now)
    algorithm_performance: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def duplicate_percentage(self) -> float:
        """Percentage of files that are duplicates."""
        if self.totals.total_files_processed == 0:
            return 0.0
        return self.totals.duplicate_files / self.totals.total_files_processed * 100
