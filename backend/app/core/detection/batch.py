"""
Thread-pool helpers for running detection work in parallel.

Every helper returns exactly what its sequential counterpart returns, in input
order. Runs share no mutable state, so independent detection runs can execute
on separate workers.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Hashable, List, Mapping, Optional, Sequence, TypeVar
import logging

import numpy as np

from .engine import DuplicateDetectionEngine
from .hashing import compute_exact_hash, compute_file_hash
from .models import DetectionConfig, DetectionResults, FileRecord
from .vectors import (
    Vector, assemble_distance_matrix, block_ranges, distance_block, distance_matrix, stack_vectors
)

T = TypeVar("T")
R = TypeVar("R")


class BatchProcessor:
    """
    Parallel hashing, distance matrices and detection runs.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers or min(32, (os.cpu_count() or 1) + 4)
        self.logger = logging.getLogger(self.__class__.__name__)

    def map_ordered(self, func: Callable[[T], R], values: Sequence[T]) -> List[R]:
        """Apply ``func`` to every value on the pool; results keep input order."""
        if not values:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(values))) as executor:
            return list(executor.map(func, values))

    def hash_buffers(self, buffers: Sequence[bytes]) -> List[str]:
        """Exact hashes of many byte buffers."""
        self.logger.debug(f"Hashing {len(buffers)} buffers with {self.max_workers} workers")
        return self.map_ordered(compute_exact_hash, buffers)

    def hash_files(self, file_paths: Sequence[str], chunk_size: int = 8192) -> List[str]:
        """Exact hashes of files on disk; the first unreadable file's error propagates."""
        self.logger.debug(f"Hashing {len(file_paths)} files in {chunk_size} byte chunks")
        return self.map_ordered(lambda path: compute_file_hash(path, chunk_size), file_paths)

    def distance_matrix(self, vectors: Sequence[Vector]) -> np.ndarray:
        """
        Cosine distance matrix built from row blocks computed in parallel.

        Identical to ``vectors.distance_matrix`` for the same input.
        """
        matrix = stack_vectors(vectors)
        n = matrix.shape[0]
        if n == 0 or matrix.shape[1] == 0:
            return distance_matrix(matrix)

        ranges = block_ranges(n)
        blocks = self.map_ordered(lambda r: distance_block(matrix, r.start, r.stop), ranges)
        return assemble_distance_matrix(blocks)

    def run_detections(self, batches: Sequence[Sequence[FileRecord]],
                       config: Optional[DetectionConfig] = None,
                       manual_keep: Optional[Mapping[str, Hashable]] = None) -> List[DetectionResults]:
        """
        Run one independent detection per batch.

        Each batch gets its own engine, so no algorithm state is shared. The
        first failing batch's error propagates.
        """
        def run(files: Sequence[FileRecord]) -> DetectionResults:
            engine = DuplicateDetectionEngine(config)
            return engine.detect_duplicates(files, manual_keep=manual_keep)

        self.logger.info(f"Running {len(batches)} detection batches")
        return self.map_ordered(run, batches)
