"""
Unit tests for core detection engine components.
"""

import json
import pytest
from datetime import datetime

from backend.app.core.config import Settings
from backend.app.core.detection.algorithms import (
    AlgorithmRegistry, ClusteringAlgorithm, HierarchicalClusterer, ThresholdClusterer,
    algorithm_registry
)
from backend.app.core.detection.config import ConfigManager
from backend.app.core.detection.errors import (
    DetectionError, DimensionMismatchError, InvalidConfigError, InvalidEmbeddingError,
    InvalidFileRecordError, InvalidKeepCandidateError
)
from backend.app.core.detection.models import (
    AlgorithmPerformance, ClusteringMethod, DetectionConfig, DetectionResults, DetectionTotals,
    DuplicateGroup, EmbeddingType, ExactMatch, FileEmbedding, FileRecord, GroupType, KeepStrategy,
    Sensitivity, SimilarityMatch, SimilarityMetric
)


class TestDetectionConfig:
    """Test DetectionConfig validation and functionality."""

    def test_default_config_is_valid(self):
        """Test that default configuration is valid."""
        config = DetectionConfig()
        assert config.validate() == []
        assert config.clustering_method is ClusteringMethod.THRESHOLD
        assert config.text_threshold == 0.9
        assert config.max_clusters == 10
        assert config.min_similarity == 0.8

    def test_invalid_thresholds(self):
        """Test validation of similarity thresholds."""
        config = DetectionConfig(text_threshold=1.2, image_threshold=-0.1, min_similarity=2.0)
        errors = config.validate()
        assert len(errors) == 3
        assert any("text_threshold" in error for error in errors)

    def test_invalid_cluster_settings(self):
        """Test validation of cluster limits."""
        errors = DetectionConfig(max_clusters=0, min_cluster_size=1).validate()
        assert any("max_clusters" in error for error in errors)
        assert any("min_cluster_size" in error for error in errors)

    def test_invalid_dimensions(self):
        """Test that embedding dimensions must be positive."""
        assert DetectionConfig(text_dimension=0).validate() == ["embedding dimensions must be positive"]

    def test_unparsed_enum(self):
        """Test that string values are flagged when not converted to enums."""
        errors = DetectionConfig(metric="cosine").validate()
        assert any("metric" in error for error in errors)

    def test_hierarchical_with_euclidean(self):
        """Test the metric restriction of hierarchical clustering."""
        config = DetectionConfig(clustering_method=ClusteringMethod.HIERARCHICAL,
                                 metric=SimilarityMetric.EUCLIDEAN)
        assert config.validate() == ["hierarchical clustering only supports the cosine metric"]

    def test_per_type_lookups(self):
        """Test threshold and dimension lookups by embedding family."""
        config = DetectionConfig(text_threshold=0.8, image_threshold=0.7)
        assert config.threshold_for(EmbeddingType.TEXT) == 0.8
        assert config.threshold_for(EmbeddingType.IMAGE) == 0.7
        assert config.dimension_for(EmbeddingType.TEXT) == 768
        assert config.dimension_for(EmbeddingType.IMAGE) == 512

    def test_from_settings(self):
        """Test deriving a configuration from application settings."""
        settings = Settings(max_clusters=20, text_embedding_dimension=384)

        medium = DetectionConfig.from_settings(settings)
        assert medium.text_threshold == 0.85
        assert medium.image_threshold == 0.80
        assert medium.max_clusters == 20
        assert medium.text_dimension == 384

        high = DetectionConfig.from_settings(settings, Sensitivity.HIGH, keep_strategy=KeepStrategy.KEEP_FIRST)
        assert high.text_threshold == 0.95
        assert high.image_threshold == 0.90
        assert high.keep_strategy is KeepStrategy.KEEP_FIRST


class TestFileRecord:
    """Test FileRecord and FileEmbedding models."""

    def test_create_file_record(self):
        """Test creating a FileRecord instance."""
        embedding = FileEmbedding(EmbeddingType.TEXT, [0.1, 0.2, 0.3], "minilm")
        record = FileRecord(
            file_id=1,
            file_path="/test/file.txt",
            file_name="file.txt",
            file_size=1024,
            sha256="abc123",
            embeddings={EmbeddingType.TEXT: embedding},
        )

        assert record.get_embedding(EmbeddingType.TEXT).dimension == 3
        assert record.get_embedding(EmbeddingType.TEXT).vector == (0.1, 0.2, 0.3)
        assert record.get_embedding(EmbeddingType.IMAGE) is None

    def test_record_is_immutable(self):
        """Test that records cannot be changed after creation."""
        record = FileRecord(file_id=1, file_path="/a", file_name="a", file_size=1, sha256="abc")
        with pytest.raises(AttributeError):
            record.file_size = 2

    def test_missing_hash(self):
        """Test that every record needs an exact hash."""
        with pytest.raises(InvalidFileRecordError):
            FileRecord(file_id=1, file_path="/a", file_name="a", file_size=1, sha256="")

    def test_negative_size(self):
        """Test that sizes cannot be negative."""
        with pytest.raises(InvalidFileRecordError):
            FileRecord(file_id=1, file_path="/a", file_name="a", file_size=-1, sha256="abc")

    def test_embedding_under_wrong_key(self):
        """Test that embeddings are stored under their own family."""
        embedding = FileEmbedding(EmbeddingType.IMAGE, [1.0])
        with pytest.raises(InvalidEmbeddingError):
            FileRecord(file_id=1, file_path="/a", file_name="a", file_size=1, sha256="abc",
                       embeddings={EmbeddingType.TEXT: embedding})

    def test_declared_dimension_mismatch(self):
        """Test that a declared dimension must match the vector."""
        with pytest.raises(InvalidEmbeddingError, match="declares dimension 768"):
            FileEmbedding(EmbeddingType.TEXT, [0.1] * 512, "model-x", dimension=768)


class TestDuplicateGroup:
    """Test DuplicateGroup model."""

    def setup_method(self):
        """Setup test fixtures."""
        self.files = [
            FileRecord(file_id=1, file_path="/a", file_name="a", file_size=100, sha256="abc"),
            FileRecord(file_id=2, file_path="/b", file_name="b", file_size=300, sha256="abc"),
        ]

    def test_create_duplicate_group(self):
        """Test creating a DuplicateGroup instance."""
        group = DuplicateGroup(
            group_id="exact:abc",
            group_type=GroupType.EXACT,
            similarity=1.0,
            files=self.files,
            keep_candidate=self.files[1],
            evidence=ExactMatch("abc"),
        )

        assert group.file_count == 2
        assert group.total_size == 400
        assert group.potential_savings == 100
        assert group.duplicates == [self.files[0]]
        assert isinstance(group.created_at, datetime)

    def test_group_needs_two_files(self):
        """Test minimum group size."""
        with pytest.raises(ValueError, match="at least two"):
            DuplicateGroup("g", GroupType.EXACT, 1.0, self.files[:1], self.files[0], ExactMatch("abc"))

    def test_empty_group(self):
        """Test empty group validation."""
        with pytest.raises(ValueError, match="at least one"):
            DuplicateGroup("g", GroupType.EXACT, 1.0, [], self.files[0], ExactMatch("abc"))

    def test_similarity_range(self):
        """Test that similarity must be in [0, 1]."""
        with pytest.raises(ValueError, match="similarity"):
            DuplicateGroup("g", GroupType.EXACT, 1.5, self.files, self.files[0], ExactMatch("abc"))

    def test_keep_candidate_must_be_member(self):
        """Test the keep candidate membership invariant."""
        outsider = FileRecord(file_id=9, file_path="/z", file_name="z", file_size=1, sha256="zzz")
        with pytest.raises(InvalidKeepCandidateError):
            DuplicateGroup("g", GroupType.EXACT, 1.0, self.files, outsider, ExactMatch("abc"))

    def test_evidence_matches_group_type(self):
        """Test that exact groups carry exact evidence and similarity groups do not."""
        evidence = SimilarityMatch(EmbeddingType.TEXT, 0, ClusteringMethod.THRESHOLD)
        with pytest.raises(ValueError, match="evidence"):
            DuplicateGroup("g", GroupType.EXACT, 1.0, self.files, self.files[0], evidence)
        with pytest.raises(ValueError, match="evidence"):
            DuplicateGroup("g", GroupType.TEXT_SIMILAR, 0.9, self.files, self.files[0], ExactMatch("abc"))

    def test_embedding_type_group_type(self):
        """Test the embedding family to group type mapping."""
        assert EmbeddingType.TEXT.group_type is GroupType.TEXT_SIMILAR
        assert EmbeddingType.IMAGE.group_type is GroupType.IMAGE_SIMILAR


class TestDetectionResults:
    """Test DetectionResults and metric models."""

    def test_duplicate_percentage(self):
        """Test the duplicate percentage calculation."""
        totals = DetectionTotals(total_files_processed=8, total_groups=1, duplicate_files=2,
                                 total_reclaimable=10)
        results = DetectionResults("s", [], totals, DetectionConfig(), 5)
        assert results.duplicate_percentage == 25.0

    def test_duplicate_percentage_no_files(self):
        """Test the zero-file case."""
        totals = DetectionTotals(0, 0, 0, 0)
        assert DetectionResults("s", [], totals, DetectionConfig(), 0).duplicate_percentage == 0.0

    def test_items_per_second(self):
        """Test processing rate."""
        assert AlgorithmPerformance("x", items_processed=100, execution_time_ms=500).items_per_second == 200.0
        assert AlgorithmPerformance("x", items_processed=100).items_per_second == 0.0


class TestErrors:
    """Test the error hierarchy."""

    def test_errors_are_value_errors(self):
        """Test that every detection error can be caught as ValueError."""
        assert issubclass(DetectionError, ValueError)
        assert issubclass(DimensionMismatchError, DetectionError)

    def test_dimension_mismatch_details(self):
        """Test the lengths carried by the error."""
        error = DimensionMismatchError(768, 512)
        assert (error.left, error.right) == (768, 512)
        assert "768 and 512" in str(error)


class TestAlgorithmRegistry:
    """Test AlgorithmRegistry functionality."""

    def test_builtin_algorithms_registered(self):
        """Test that both clustering methods are available."""
        assert set(algorithm_registry.list_algorithms()) == {
            ClusteringMethod.THRESHOLD, ClusteringMethod.HIERARCHICAL
        }

    def test_get_algorithm(self):
        """Test getting algorithm instances."""
        config = DetectionConfig()
        assert isinstance(algorithm_registry.get_algorithm(ClusteringMethod.THRESHOLD, config),
                          ThresholdClusterer)
        assert isinstance(algorithm_registry.get_algorithm(ClusteringMethod.HIERARCHICAL, config),
                          HierarchicalClusterer)

    def test_unregistered_method(self):
        """Test lookup in an empty registry."""
        with pytest.raises(InvalidConfigError):
            AlgorithmRegistry().get_algorithm(ClusteringMethod.THRESHOLD, DetectionConfig())

    def test_register_invalid_algorithm(self):
        """Test registering a class that is not a clustering algorithm."""
        with pytest.raises(ValueError):
            AlgorithmRegistry().register(str)

    def test_register_custom_algorithm(self):
        """Test that a registered class replaces the one for its method."""

        class EverythingClusterer(ClusteringAlgorithm):
            method = ClusteringMethod.THRESHOLD

            def cluster(self, items, embedding_type):
                return []

            def get_algorithm_name(self):
                return "EverythingClusterer"

            def group_similarity(self, cluster, embedding_type):
                return 1.0

        registry = AlgorithmRegistry()
        registry.register(EverythingClusterer)
        algorithm = registry.get_algorithm(ClusteringMethod.THRESHOLD, DetectionConfig())
        assert algorithm.get_algorithm_name() == "EverythingClusterer"


class TestConfigManager:
    """Test ConfigManager functionality."""

    def setup_method(self):
        """Setup test fixtures."""
        self.config_manager = ConfigManager()

    def test_get_default_config(self):
        """Test getting default configuration."""
        assert self.config_manager.get_default_config() == DetectionConfig()

    def test_default_config_from_settings(self):
        """Test defaults derived from settings."""
        manager = ConfigManager(settings=Settings(max_clusters=7))
        assert manager.get_default_config().max_clusters == 7

    def test_create_config_from_dict(self):
        """Test creating configuration from dictionary."""
        config = self.config_manager.create_config_from_dict({
            'clustering_method': 'hierarchical',
            'keep_strategy': 'keep_newest',
            'max_clusters': 5,
            'not_a_field': 'ignored',
        })

        assert config.clustering_method is ClusteringMethod.HIERARCHICAL
        assert config.keep_strategy is KeepStrategy.KEEP_NEWEST
        assert config.max_clusters == 5

    def test_unknown_enum_value(self):
        """Test that an unknown metric is a configuration error."""
        with pytest.raises(InvalidConfigError, match="manhattan"):
            self.config_manager.create_config_from_dict({'metric': 'manhattan'})

    def test_invalid_values(self):
        """Test that invalid values are reported with every error."""
        with pytest.raises(InvalidConfigError) as exc_info:
            self.config_manager.load_config({'text_threshold': 3, 'max_clusters': -1})
        assert len(exc_info.value.errors) == 2

    def test_config_to_dict(self):
        """Test converting configuration to dictionary."""
        config_dict = self.config_manager.config_to_dict(DetectionConfig())

        assert config_dict['clustering_method'] == 'threshold'
        assert config_dict['metric'] == 'cosine'
        assert config_dict['keep_strategy'] == 'keep_largest'
        json.dumps(config_dict)

    def test_merge_configs(self):
        """Test merging configurations."""
        merged = self.config_manager.merge_configs(DetectionConfig(), {'text_threshold': 0.75})

        assert merged.text_threshold == 0.75
        assert merged.image_threshold == 0.9

    def test_save_and_load(self, tmp_path):
        """Test persisting configuration to a JSON file."""
        manager = ConfigManager(config_file=str(tmp_path / "detection.json"))
        manager.save_config(DetectionConfig(max_clusters=3, metric=SimilarityMetric.EUCLIDEAN))

        loaded = manager.load_config()
        assert loaded.max_clusters == 3
        assert loaded.metric is SimilarityMetric.EUCLIDEAN

    def test_unreadable_file_falls_back_to_defaults(self, tmp_path):
        """Test that a corrupt config file yields the default configuration."""
        path = tmp_path / "detection.json"
        path.write_text("{not json")

        assert ConfigManager(config_file=str(path)).load_config() == DetectionConfig()

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test loading without a config file."""
        manager = ConfigManager(config_file=str(tmp_path / "missing.json"))
        assert manager.load_config() == DetectionConfig()

    def test_config_for_sensitivity(self):
        """Test threshold presets."""
        manager = ConfigManager(settings=Settings())
        low = manager.get_config_for_sensitivity(Sensitivity.LOW)

        assert low.text_threshold == 0.70
        assert low.image_threshold == 0.65
