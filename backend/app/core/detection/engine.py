"""
Core duplicate detection engine.
"""

import uuid
import time
import logging
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Set, Union

from .models import (
    AssemblyResult, DetectionConfig, DetectionResults, DetectionTotals, DuplicateGroup,
    EmbeddingType, ExactMatch, FileRecord, GroupType, KeepStrategy, SimilarityCluster,
    SimilarityMatch, ClusteringMethod
)
from .errors import (
    EmptyInputError, InvalidConfigError, InvalidEmbeddingError, InvalidFileRecordError,
    InvalidKeepCandidateError, UnknownFileError
)
from .algorithms import ClusteringAlgorithm, SHA256Detector, ExactBucket, algorithm_registry
from .algorithms.base import EmbeddingItem
from ..logging import logger

ClustersByType = Mapping[Union[EmbeddingType, str], Sequence[SimilarityCluster]]
ClusterScorer = Callable[[SimilarityCluster, EmbeddingType], float]

# Order in which embedding families are clustered and reported
EMBEDDING_ORDER = (EmbeddingType.TEXT, EmbeddingType.IMAGE)


def exact_group_key(sha256: str) -> str:
    """Stable key of the exact group for a hash; usable in ``manual_keep``."""
    return f"{GroupType.EXACT.value}:{sha256}"


def similarity_group_key(embedding_type: EmbeddingType, cluster_id: int) -> str:
    """Stable key of the similarity group built from a cluster; usable in ``manual_keep``."""
    return f"{embedding_type.group_type.value}:{cluster_id}"


def parse_keep_strategy(strategy: Union[KeepStrategy, str]) -> KeepStrategy:
    """Accept a strategy enum or its string value."""
    if isinstance(strategy, KeepStrategy):
        return strategy
    try:
        return KeepStrategy(strategy)
    except ValueError:
        raise InvalidConfigError(
            f"Unknown keep strategy {strategy!r}, expected one of {[s.value for s in KeepStrategy]}"
        ) from None


def validate_files(files: Sequence[FileRecord]) -> None:
    """
    Check a detection input set.

    Raises:
        EmptyInputError: If there are no files
        InvalidFileRecordError: If a file id occurs twice
    """
    if not files:
        raise EmptyInputError("At least one file is required for duplicate detection")

    seen: Set[Hashable] = set()
    for file in files:
        if file.file_id in seen:
            raise InvalidFileRecordError(f"File id {file.file_id!r} occurs more than once")
        seen.add(file.file_id)


def validate_embeddings(files: Sequence[FileRecord], config: DetectionConfig) -> None:
    """
    Check every embedding against the configured dimension of its family.

    Raises:
        InvalidEmbeddingError: On the first embedding of the wrong length
    """
    for file in files:
        for embedding_type, embedding in file.embeddings.items():
            expected = config.dimension_for(embedding_type)
            if embedding.dimension != expected:
                raise InvalidEmbeddingError(
                    f"File {file.file_id!r}: {embedding_type.value} embedding from model "
                    f"{embedding.model!r} has dimension {embedding.dimension}, expected {expected}"
                )


class GroupAssembler:
    """Builds duplicate groups from exact buckets and similarity clusters."""

    def __init__(self, config: DetectionConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    def select_keep_candidate(self, group_key: str, files: Sequence[FileRecord],
                              strategy: KeepStrategy,
                              manual_keep: Optional[Mapping[str, Hashable]] = None) -> FileRecord:
        """
        Pick the member to keep.

        ``keep_first`` takes the first file in input order. ``keep_largest`` and
        ``keep_newest`` take the largest size or latest modification time, the
        earliest file winning ties; files without a modification time count as
        oldest. ``manual`` takes the id stored under ``group_key``.

        Raises:
            InvalidKeepCandidateError: For ``manual`` when no id is given for the
                group or the id is not a member
        """
        if strategy is KeepStrategy.KEEP_FIRST:
            return files[0]

        if strategy is KeepStrategy.KEEP_LARGEST:
            return max(files, key=lambda f: f.file_size)

        if strategy is KeepStrategy.KEEP_NEWEST:
            return max(files, key=lambda f: f.modified_at.timestamp() if f.modified_at else float("-inf"))

        member_ids = [f.file_id for f in files]
        if not manual_keep or group_key not in manual_keep:
            raise InvalidKeepCandidateError(group_key, None, member_ids)
        keep_id = manual_keep[group_key]
        for file in files:
            if file.file_id == keep_id:
                return file
        raise InvalidKeepCandidateError(group_key, keep_id, member_ids)

    def assemble(self, files: Sequence[FileRecord],
                 exact_buckets: Sequence[ExactBucket],
                 clusters_by_type: Optional[ClustersByType] = None,
                 keep_strategy: Optional[KeepStrategy] = None,
                 manual_keep: Optional[Mapping[str, Hashable]] = None,
                 scorer: Optional[ClusterScorer] = None) -> AssemblyResult:
        """
        Assemble duplicate groups.

        Exact groups come first in bucket order, then similarity groups for
        text and image clusters in emission order. A file already placed in a
        group is dropped from later clusters; a cluster left with fewer than
        ``min_cluster_size`` members produces no group.

        Args:
            files: All files of the run, in input order
            exact_buckets: Files bucketed by exact hash
            clusters_by_type: Similarity clusters per embedding family
            keep_strategy: Keep policy, defaults to ``config.keep_strategy``
            manual_keep: Group key to file id, used by the ``manual`` strategy
            scorer: Similarity reported for a cluster's group, defaults to
                ``avg_similarity``, then the cluster's threshold, then the config
                threshold of its family

        Returns:
            Groups and totals

        Raises:
            UnknownFileError: If a cluster names a file that is not in ``files``
            InvalidKeepCandidateError: If a manual keep candidate is invalid
        """
        strategy = parse_keep_strategy(keep_strategy or self.config.keep_strategy)
        by_id = {f.file_id: f for f in files}
        position = {f.file_id: index for index, f in enumerate(files)}
        placed: Set[Hashable] = set()
        groups: List[DuplicateGroup] = []

        for bucket in exact_buckets:
            group_key = exact_group_key(bucket.sha256)
            members = [f for f in bucket.files if f.file_id not in placed]
            if len(members) < 2:
                continue
            groups.append(DuplicateGroup(
                group_id=group_key,
                group_type=GroupType.EXACT,
                similarity=1.0,
                files=members,
                keep_candidate=self.select_keep_candidate(group_key, members, strategy, manual_keep),
                evidence=ExactMatch(sha256=bucket.sha256),
            ))
            placed.update(f.file_id for f in members)

        score = scorer or self._cluster_score
        normalized = self._normalize_clusters(clusters_by_type)
        for embedding_type in EMBEDDING_ORDER:
            for cluster in normalized.get(embedding_type, []):
                unknown = [m for m in cluster.members if m not in by_id]
                if unknown:
                    raise UnknownFileError(
                        f"{embedding_type.value} cluster {cluster.cluster_id} references unknown files {unknown}"
                    )

                member_ids = list(dict.fromkeys(m for m in cluster.members if m not in placed))
                if len(member_ids) < self.config.min_cluster_size:
                    self.logger.debug(f"Dropped {embedding_type.value} cluster {cluster.cluster_id}: "
                                      f"{len(member_ids)} unplaced members left")
                    continue

                members = sorted((by_id[m] for m in member_ids), key=lambda f: position[f.file_id])
                group_key = similarity_group_key(embedding_type, cluster.cluster_id)
                method = (ClusteringMethod.HIERARCHICAL if cluster.avg_similarity is not None
                          else ClusteringMethod.THRESHOLD)
                groups.append(DuplicateGroup(
                    group_id=group_key,
                    group_type=embedding_type.group_type,
                    similarity=score(cluster, embedding_type),
                    files=members,
                    keep_candidate=self.select_keep_candidate(group_key, members, strategy, manual_keep),
                    evidence=SimilarityMatch(
                        embedding_type=embedding_type,
                        cluster_id=cluster.cluster_id,
                        method=method,
                    ),
                ))
                placed.update(member_ids)

        return AssemblyResult(groups=groups, totals=self.compute_totals(files, groups))

    def compute_totals(self, files: Sequence[FileRecord], groups: Sequence[DuplicateGroup]) -> DetectionTotals:
        groups_by_type: Dict[str, int] = {t.value: 0 for t in GroupType}
        for group in groups:
            groups_by_type[group.group_type.value] += 1

        return DetectionTotals(
            total_files_processed=len(files),
            total_groups=len(groups),
            duplicate_files=sum(g.file_count for g in groups),
            total_reclaimable=sum(g.potential_savings for g in groups),
            groups_by_type=groups_by_type,
        )

    def _cluster_score(self, cluster: SimilarityCluster, embedding_type: EmbeddingType) -> float:
        """Average similarity for hierarchical clusters, the build threshold for threshold clusters."""
        if cluster.avg_similarity is not None:
            return max(0.0, min(1.0, cluster.avg_similarity))
        if cluster.threshold is not None:
            return cluster.threshold
        return self.config.threshold_for(embedding_type)

    @staticmethod
    def _normalize_clusters(clusters_by_type: Optional[ClustersByType]
                            ) -> Dict[EmbeddingType, Sequence[SimilarityCluster]]:
        normalized = {}
        for key, clusters in (clusters_by_type or {}).items():
            try:
                embedding_type = key if isinstance(key, EmbeddingType) else EmbeddingType(key)
            except ValueError:
                raise InvalidConfigError(
                    f"Unknown embedding type {key!r}, expected one of {[t.value for t in EmbeddingType]}"
                ) from None
            normalized[embedding_type] = clusters
        return normalized


def assemble_duplicate_groups(files: Sequence[FileRecord],
                              clusters_by_type: Optional[ClustersByType] = None,
                              keep_strategy: Union[KeepStrategy, str] = KeepStrategy.KEEP_LARGEST,
                              manual_keep: Optional[Mapping[str, Hashable]] = None,
                              config: Optional[DetectionConfig] = None) -> AssemblyResult:
    """
    Group exact duplicates and precomputed similarity clusters.

    Args:
        files: Processed files, each with an exact hash
        clusters_by_type: Clusters per embedding family (``EmbeddingType`` or its value)
        keep_strategy: ``keep_first``, ``keep_largest``, ``keep_newest`` or ``manual``
        manual_keep: Group key to file id for the ``manual`` strategy; keys come
            from ``exact_group_key`` and ``similarity_group_key``
        config: Supplies thresholds reported for threshold clusters and the
            minimum group size

    Returns:
        Groups in discovery order plus totals

    Raises:
        EmptyInputError: If ``files`` is empty
        InvalidFileRecordError: If a file id occurs twice
        InvalidEmbeddingError: If an embedding does not match the configured dimension
        UnknownFileError: If a cluster names a file outside ``files``
        InvalidKeepCandidateError: If a manual keep candidate is invalid
    """
    config = config or DetectionConfig()
    validate_files(files)
    validate_embeddings(files, config)
    assembler = GroupAssembler(config)
    exact_buckets = SHA256Detector().detect(files)
    return assembler.assemble(files, exact_buckets, clusters_by_type,
                              parse_keep_strategy(keep_strategy), manual_keep)


class DuplicateDetectionEngine:
    """Core engine for running duplicate detection."""

    def __init__(self, config: Optional[DetectionConfig] = None,
                 algorithm: Optional[ClusteringAlgorithm] = None):
        self.config = config or DetectionConfig()
        errors = self.config.validate()
        if errors:
            raise InvalidConfigError(f"Invalid detection configuration: {'; '.join(errors)}", errors)

        self.logger = logger
        self.exact_detector = SHA256Detector()
        self.algorithm = algorithm or algorithm_registry.get_algorithm(self.config.clustering_method, self.config)
        self.assembler = GroupAssembler(self.config)

    def validate_embeddings(self, files: Sequence[FileRecord]) -> None:
        """Check embeddings against this engine's configured dimensions."""
        validate_embeddings(files, self.config)

    def collect_embeddings(self, files: Sequence[FileRecord], embedding_type: EmbeddingType,
                           exclude_ids: Optional[Set[Hashable]] = None) -> List[EmbeddingItem]:
        """``(file_id, vector)`` pairs of one family, in input order."""
        exclude_ids = exclude_ids or set()
        items = []
        for file in files:
            embedding = file.get_embedding(embedding_type)
            if embedding is not None and file.file_id not in exclude_ids:
                items.append((file.file_id, embedding.vector))
        return items

    def cluster_embeddings(self, files: Sequence[FileRecord], embedding_type: EmbeddingType,
                           exclude_ids: Optional[Set[Hashable]] = None) -> List[SimilarityCluster]:
        """Cluster one embedding family; fewer than two candidates yields no clusters."""
        items = self.collect_embeddings(files, embedding_type, exclude_ids)
        if len(items) < 2:
            self.logger.debug(f"Skipping {embedding_type.value} clustering: {len(items)} candidates")
            return []
        return self.algorithm.run_clustering(items, embedding_type)

    def detect_duplicates(self, files: Sequence[FileRecord],
                          keep_strategy: Optional[Union[KeepStrategy, str]] = None,
                          manual_keep: Optional[Mapping[str, Hashable]] = None) -> DetectionResults:
        """
        Run exact and similarity detection over a file set.

        Args:
            files: Files to analyze
            keep_strategy: Overrides ``config.keep_strategy``
            manual_keep: Group key to file id for the ``manual`` strategy

        Returns:
            Detection results with duplicate groups and totals

        Raises:
            DetectionError: Any input error aborts the whole run
        """
        session_id = str(uuid.uuid4())
        start_time = time.time()

        validate_files(files)
        self.validate_embeddings(files)
        strategy = parse_keep_strategy(keep_strategy or self.config.keep_strategy)

        self.logger.info(f"Starting duplicate detection (session: {session_id}, "
                         f"method: {self.config.clustering_method.value})")
        self.logger.info(f"Analyzing {len(files)} files")

        exact_buckets = self.exact_detector.detect(files)
        exact_ids: Set[Hashable] = set()
        if self.config.exclude_exact_from_similarity:
            exact_ids = {f.file_id for bucket in exact_buckets for f in bucket.files}

        clusters_by_type = {}
        algorithm_performance = {}
        for embedding_type in EMBEDDING_ORDER:
            clusters_by_type[embedding_type] = self.cluster_embeddings(files, embedding_type, exact_ids)
            perf = self.algorithm.get_performance_metrics()
            algorithm_performance[f"{perf.algorithm_name}:{embedding_type.value}"] = {
                'items_processed': perf.items_processed,
                'execution_time_ms': perf.execution_time_ms,
                'clusters_found': perf.clusters_found,
                'items_per_second': perf.items_per_second,
            }
            self.algorithm.reset_performance_metrics()

        assembly = self.assembler.assemble(files, exact_buckets, clusters_by_type, strategy, manual_keep,
                                           scorer=self.algorithm.group_similarity)

        end_time = time.time()
        detection_time_ms = int((end_time - start_time) * 1000)

        results = DetectionResults(
            session_id=session_id,
            groups=assembly.groups,
            totals=assembly.totals,
            config=self.config,
            detection_time_ms=detection_time_ms,
            algorithm_performance=algorithm_performance,
        )

        self.logger.info(f"Detection completed: {assembly.totals.total_groups} groups, "
                         f"{assembly.totals.duplicate_files} duplicates, "
                         f"{assembly.totals.total_reclaimable} bytes reclaimable in {detection_time_ms}ms")

        return results

    def get_detection_report(self, results: DetectionResults) -> Dict[str, Any]:
        """
        Generate a JSON-serialisable detection report.

        Args:
            results: Detection results to report on

        Returns:
            Detailed report dictionary
        """
        return {
            'summary': {
                'session_id': results.session_id,
                'total_files_processed': results.totals.total_files_processed,
                'total_groups': results.totals.total_groups,
                'duplicate_files': results.totals.duplicate_files,
                'total_reclaimable': results.totals.total_reclaimable,
                'groups_by_type': dict(results.totals.groups_by_type),
                'detection_time_ms': results.detection_time_ms,
                'duplicate_percentage': results.duplicate_percentage
            },
            'algorithm_performance': results.algorithm_performance,
            'groups': [
                {
                    'id': group.group_id,
                    'group_type': group.group_type.value,
                    'similarity': group.similarity,
                    'file_count': group.file_count,
                    'total_size': group.total_size,
                    'potential_savings': group.potential_savings,
                    'keep_candidate': group.keep_candidate.file_id,
                    'files': [
                        {
                            'id': f.file_id,
                            'path': f.file_path,
                            'name': f.file_name,
                            'size': f.file_size,
                            'mime_type': f.mime_type,
                            'is_keep_candidate': f.file_id == group.keep_candidate.file_id
                        }
                        for f in group.files
                    ]
                }
                for group in results.groups
            ],
            'config': {
                'clustering_method': results.config.clustering_method.value,
                'metric': results.config.metric.value,
                'text_threshold': results.config.text_threshold,
                'image_threshold': results.config.image_threshold,
                'keep_strategy': results.config.keep_strategy.value
            }
        }
