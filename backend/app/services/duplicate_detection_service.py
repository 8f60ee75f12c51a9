"""
Service layer for duplicate detection operations.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Union

from ..core.config import Settings, settings as default_settings
from ..core.detection import DuplicateDetectionEngine, DetectionConfig, DetectionResults
from ..core.detection.batch import BatchProcessor
from ..core.detection.errors import EmptyInputError, ProcessingLimitError
from ..core.detection.hashing import (
    FileTypeDetector, compute_content_hash, compute_perceptual_hash, guess_mime_type
)
from ..core.detection.models import (
    EmbeddingType, FileCategory, FileEmbedding, FileRecord, KeepStrategy, Sensitivity
)
from ..core.detection.preprocessing import PathUtils, TextPreprocessor
from ..core.logging import logger


@dataclass
class UploadedFile:
    """A file handed to the service with its already-computed embeddings."""

    name: str
    content: bytes
    path: Optional[str] = None
    file_id: Optional[Hashable] = None
    text: Optional[str] = None
    text_embedding: Optional[Sequence[float]] = None
    text_model: str = "text-embedding"
    image_embedding: Optional[Sequence[float]] = None
    image_model: str = "image-embedding"
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


class DuplicateDetectionService:
    """Service for running duplicate detection over an uploaded batch."""

    def __init__(self, settings: Optional[Settings] = None,
                 batch_processor: Optional[BatchProcessor] = None):
        self.settings = settings or default_settings
        self.batch_processor = batch_processor or BatchProcessor()
        self.logger = logger

    def default_config(self, sensitivity: Sensitivity = Sensitivity.MEDIUM) -> DetectionConfig:
        """Detection configuration derived from the service settings."""
        return DetectionConfig.from_settings(self.settings, sensitivity)

    def check_limits(self, uploads: Sequence[UploadedFile]) -> None:
        """
        Enforce batch, file size and text length limits.

        Raises:
            EmptyInputError: If the batch is empty
            ProcessingLimitError: If any limit is exceeded
        """
        if not uploads:
            raise EmptyInputError("No files uploaded")

        if len(uploads) > self.settings.max_batch_size:
            raise ProcessingLimitError(
                f"Batch of {len(uploads)} files exceeds the limit of {self.settings.max_batch_size}"
            )

        for upload in uploads:
            if len(upload.content) > self.settings.max_file_size:
                raise ProcessingLimitError(
                    f"{upload.name} is {len(upload.content)} bytes, "
                    f"limit is {self.settings.max_file_size}"
                )
            if upload.text is not None and len(upload.text) > self.settings.max_text_length:
                raise ProcessingLimitError(
                    f"{upload.name} has {len(upload.text)} characters of text, "
                    f"limit is {self.settings.max_text_length}"
                )

    def extract_text(self, upload: UploadedFile, file_type: FileCategory) -> Optional[str]:
        """Text supplied with the upload, or the UTF-8 decoded content of a text file."""
        if upload.text is not None:
            return upload.text
        if file_type is FileCategory.TEXT:
            text = upload.content.decode("utf-8", errors="replace")
            if len(text) > self.settings.max_text_length:
                raise ProcessingLimitError(
                    f"{upload.name} has {len(text)} characters of text, "
                    f"limit is {self.settings.max_text_length}"
                )
            return text
        return None

    def build_file_record(self, upload: UploadedFile, sha256: str,
                          base_path: Optional[str] = None) -> FileRecord:
        """
        Turn an upload into an immutable file record.

        Args:
            upload: Uploaded file
            sha256: Exact hash of ``upload.content``
            base_path: When given, the record path is normalised and made
                relative to it

        Returns:
            FileRecord with hashes, classification and embeddings
        """
        file_type = FileTypeDetector.get_file_type(upload.name)
        text = self.extract_text(upload, file_type)

        embeddings = {}
        if upload.text_embedding is not None:
            embeddings[EmbeddingType.TEXT] = FileEmbedding(
                embedding_type=EmbeddingType.TEXT,
                vector=tuple(upload.text_embedding),
                model=upload.text_model,
            )
        if upload.image_embedding is not None:
            embeddings[EmbeddingType.IMAGE] = FileEmbedding(
                embedding_type=EmbeddingType.IMAGE,
                vector=tuple(upload.image_embedding),
                model=upload.image_model,
            )

        file_path = upload.path or upload.name
        if base_path is not None:
            file_path = PathUtils.relative_path(file_path, base_path)

        return FileRecord(
            file_id=upload.file_id if upload.file_id is not None else str(uuid.uuid4()),
            file_path=file_path,
            file_name=upload.name,
            file_size=len(upload.content),
            sha256=sha256,
            mime_type=guess_mime_type(upload.name),
            file_type=file_type,
            content_hash=compute_content_hash(text) if text and text.strip() else None,
            perceptual_hash=compute_perceptual_hash(upload.content) if file_type is FileCategory.IMAGE else None,
            embeddings=embeddings,
            created_at=upload.created_at,
            modified_at=upload.modified_at,
        )

    def build_file_records(self, uploads: Sequence[UploadedFile],
                           base_path: Optional[str] = None) -> List[FileRecord]:
        """Hash every upload in parallel and build records in input order."""
        hashes = self.batch_processor.hash_buffers([u.content for u in uploads])
        return [
            self.build_file_record(upload, sha256, base_path)
            for upload, sha256 in zip(uploads, hashes)
        ]

    def keywords(self, upload: UploadedFile, max_keywords: int = 10) -> List[str]:
        """Most frequent keywords of an upload's text, empty when it has none."""
        text = self.extract_text(upload, FileTypeDetector.get_file_type(upload.name))
        return TextPreprocessor.extract_keywords(text, max_keywords) if text else []

    def hash_paths(self, file_paths: Sequence[str]) -> List[str]:
        """Exact hashes of files on disk, read in ``hash_chunk_size`` chunks."""
        return self.batch_processor.hash_files(file_paths, self.settings.hash_chunk_size)

    def preview(self, uploads: Sequence[UploadedFile],
                config: Optional[DetectionConfig] = None,
                keep_strategy: Optional[Union[KeepStrategy, str]] = None,
                manual_keep: Optional[Mapping[str, Hashable]] = None,
                base_path: Optional[str] = None) -> DetectionResults:
        """
        Detect duplicates in an uploaded batch.

        Args:
            uploads: Files with optional text and embeddings
            config: Detection configuration, defaults to the settings-derived one
            keep_strategy: Overrides the configured keep strategy
            manual_keep: Group key to file id for the ``manual`` strategy
            base_path: Report file paths relative to this directory

        Returns:
            Detection results

        Raises:
            DetectionError: Any limit or input error fails the whole batch
        """
        self.check_limits(uploads)
        records = self.build_file_records(uploads, base_path)

        engine = DuplicateDetectionEngine(config or self.default_config())
        results = engine.detect_duplicates(records, keep_strategy=keep_strategy, manual_keep=manual_keep)

        self.logger.info(f"Preview for {len(uploads)} uploads: {results.totals.total_groups} groups, "
                         f"{results.totals.total_reclaimable} bytes reclaimable")
        return results

    def get_detection_report(self, results: DetectionResults) -> Dict[str, Any]:
        """Report for a preview run, including the limits it ran under."""
        report = DuplicateDetectionEngine(results.config).get_detection_report(results)
        report['limits'] = {
            'max_file_size': self.settings.max_file_size,
            'max_text_length': self.settings.max_text_length,
            'max_batch_size': self.settings.max_batch_size,
        }
        return report
