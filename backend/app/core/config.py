from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Similarity thresholds
    text_threshold_high: float = 0.95
    text_threshold_medium: float = 0.85
    text_threshold_low: float = 0.70
    image_threshold_high: float = 0.90
    image_threshold_medium: float = 0.80
    image_threshold_low: float = 0.65
    exact_threshold: float = 1.0

    # Clustering
    max_clusters: int = 50
    min_cluster_size: int = 2
    hierarchical_threshold: float = 0.8
    dbscan_eps: float = 0.3  # declared, no density-based clustering consumes it yet
    dbscan_min_samples: int = 2

    # File processing
    max_file_size: int = 100 * 1024 * 1024  # 100MB
    max_text_length: int = 1_000_000
    max_batch_size: int = 100
    text_embedding_dimension: int = 768
    image_embedding_dimension: int = 512
    hash_chunk_size: int = 8192  # 8KB chunks for hashing

    # Logging
    log_level: str = "INFO"
    log_file: str = ""  # empty means console only

    class Config:
        env_file = ".env"
        env_prefix = "DEDUPE_"
        case_sensitive = False


# Global settings instance
settings = Settings()
