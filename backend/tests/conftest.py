"""
Pytest configuration and fixtures for detection engine tests.
"""

import math
import pytest
from datetime import datetime

from backend.app.core.detection.hashing import compute_exact_hash
from backend.app.core.detection.models import (
    DetectionConfig, EmbeddingType, FileEmbedding, FileRecord
)


def unit_vector_2d(degrees):
    """Unit vector in the plane at the given angle."""
    radians = math.radians(degrees)
    return [math.cos(radians), math.sin(radians)]


def make_file(file_id, content=None, sha256=None, size=None, text_vector=None,
              image_vector=None, modified_at=None, name=None):
    """Build a FileRecord; the hash and size default to those of ``content``."""
    content = content if content is not None else f"content-{file_id}".encode()
    embeddings = {}
    if text_vector is not None:
        embeddings[EmbeddingType.TEXT] = FileEmbedding(EmbeddingType.TEXT, tuple(text_vector), "test-text")
    if image_vector is not None:
        embeddings[EmbeddingType.IMAGE] = FileEmbedding(EmbeddingType.IMAGE, tuple(image_vector), "test-image")

    name = name or f"file{file_id}.txt"
    return FileRecord(
        file_id=file_id,
        file_path=f"/test/{name}",
        file_name=name,
        file_size=size if size is not None else len(content),
        sha256=sha256 or compute_exact_hash(content),
        embeddings=embeddings,
        modified_at=modified_at,
    )


@pytest.fixture
def file_factory():
    """Factory for FileRecord instances."""
    return make_file


@pytest.fixture
def small_dimension_config():
    """Detection config for 2-dimensional test embeddings."""
    return DetectionConfig(text_dimension=2, image_dimension=2)


@pytest.fixture
def scenario_b_items():
    """Items 1 and 2 have cosine 0.97, item 3 has cosine 0.4 to both."""
    v1 = [1.0, 0.0, 0.0]
    v2 = [0.97, math.sqrt(1 - 0.97 ** 2), 0.0]
    y = (0.4 - 0.97 * 0.4) / v2[1]
    v3 = [0.4, y, math.sqrt(1 - 0.4 ** 2 - y ** 2)]
    return [(1, v1), (2, v2), (3, v3)]


@pytest.fixture
def timestamps():
    """Three increasing modification times."""
    return [datetime(2024, 1, 1), datetime(2024, 6, 1), datetime(2025, 1, 1)]


@pytest.fixture
def unit_vector():
    """Factory for 2-d unit vectors by angle in degrees."""
    return unit_vector_2d
