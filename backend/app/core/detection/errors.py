"""
Typed errors raised by the duplicate detection engine.

Every error derives from ``DetectionError`` (itself a ``ValueError``) so callers
can catch the whole family at once or react to a single failure precisely.
"""

from typing import Any, Iterable, Optional


class DetectionError(ValueError):
    """Base class for all duplicate detection errors."""


class DimensionMismatchError(DetectionError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"Vectors must have the same length (got {left} and {right})")


class InvalidKeepCandidateError(DetectionError):
    """A manually chosen keep candidate is not a member of its group."""

    def __init__(self, group_key: str, file_id: Any, member_ids: Optional[Iterable[Any]] = None):
        self.group_key = group_key
        self.file_id = file_id
        self.member_ids = list(member_ids) if member_ids is not None else []
        super().__init__(f"Keep candidate {file_id!r} is not a member of group {group_key!r}")


class EmptyInputError(DetectionError):
    """Zero files or zero embeddings were passed where at least one is required."""


class InvalidEmbeddingError(DetectionError):
    """An embedding does not match its declared or expected dimension."""


class InvalidConfigError(DetectionError):
    """Detection configuration is malformed (unknown metric, bad threshold, ...)."""

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        self.errors = list(errors) if errors is not None else [message]
        super().__init__(message)


class ProcessingLimitError(DetectionError):
    """A file or batch exceeds the configured processing limits."""


class InvalidFileRecordError(DetectionError):
    """A file record is missing required data (exact hash, non-negative size)."""


class UnknownFileError(DetectionError):
    """A cluster references a file id that is not in the input file set."""
