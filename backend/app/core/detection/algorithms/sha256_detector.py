"""
SHA256-based exact duplicate detection algorithm.
"""

from typing import Dict, List, Optional, Sequence
from collections import defaultdict
from dataclasses import dataclass
import logging

from ..models import FileRecord


@dataclass
class ExactBucket:
    """Files sharing one exact hash."""
    sha256: str
    files: List[FileRecord]


class SHA256Detector:
    """Detects exact duplicates using SHA256 hash comparison."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.algorithm_name = "SHA256Detector"
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def detect(self, files: Sequence[FileRecord]) -> List[ExactBucket]:
        """
        Bucket files by SHA256 hash.

        Args:
            files: Files to analyze, in input order

        Returns:
            Buckets with two or more files, ordered by first appearance of
            their hash; files keep input order inside a bucket
        """
        if not files:
            return []

        hash_groups: Dict[str, List[FileRecord]] = defaultdict(list)
        for file in files:
            hash_groups[file.sha256.lower()].append(file)

        buckets = [
            ExactBucket(sha256=sha256_hash, files=file_list)
            for sha256_hash, file_list in hash_groups.items()
            if len(file_list) >= 2
        ]

        for bucket in buckets:
            self.logger.debug(f"SHA256Detector: Found duplicate group with {len(bucket.files)} files "
                              f"(hash: {bucket.sha256[:16]}...)")

        self.logger.info(f"SHA256Detector: Found {len(buckets)} duplicate groups "
                         f"from {len(files)} files")

        return buckets

    def get_algorithm_name(self) -> str:
        """Return the name of this algorithm."""
        return self.algorithm_name
