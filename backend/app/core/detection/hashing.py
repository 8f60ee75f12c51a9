"""
Content fingerprints and file classification.

Exact hashes are the ground truth for byte-identical duplicates. The content
hash is a normalisation key for text, not a security primitive. The perceptual
hash is a placeholder: a truncated SHA-1 of the raw bytes, which does not
survive re-encoding or resizing. A real perceptual hash (DCT or gradient based,
compared by Hamming distance) has to replace it before image near-duplicates
can be found from hashes alone.
"""

import hashlib
import mimetypes
import re
from typing import Iterable

from .models import FileCategory

PERCEPTUAL_HASH_LENGTH = 16

_WHITESPACE_RUN = re.compile(r"\s+")


def compute_exact_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_exact_hash_stream(chunks: Iterable[bytes]) -> str:
    """SHA-256 hex digest of a byte stream delivered in chunks."""
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()


def compute_file_hash(file_path: str, chunk_size: int = 8192) -> str:
    """SHA-256 hex digest of a file on disk, read in chunks."""
    with open(file_path, "rb") as f:
        return compute_exact_hash_stream(iter(lambda: f.read(chunk_size), b""))


def compute_md5(data: bytes) -> str:
    """MD5 hex digest; a fast checksum, never used for exact grouping."""
    return hashlib.md5(data).hexdigest()


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to one space, trim and lower-case."""
    return _WHITESPACE_RUN.sub(" ", text).strip().lower()


def compute_content_hash(text: str) -> str:
    """
    SHA-256 of normalised text.

    Texts that differ only in whitespace or letter case hash identically.

    Args:
        text: Decoded text content

    Returns:
        64 character hex digest
    """
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def compute_perceptual_hash(image_bytes: bytes) -> str:
    """Placeholder perceptual hash: first 16 hex chars of SHA-1 over the raw bytes."""
    return hashlib.sha1(image_bytes).hexdigest()[:PERCEPTUAL_HASH_LENGTH]


class FileTypeDetector:
    """Classifies files by extension."""

    IMAGE_EXTENSIONS = frozenset([
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.tiff', '.tif', '.svg'
    ])

    TEXT_EXTENSIONS = frozenset([
        '.txt', '.md', '.json', '.js', '.ts', '.py', '.java', '.cpp', '.c', '.h',
        '.css', '.html', '.xml', '.yml', '.yaml', '.sql', '.sh', '.bat', '.ps1',
        '.rs', '.go', '.php', '.rb', '.cs', '.kt', '.swift'
    ])

    DOCUMENT_EXTENSIONS = frozenset([
        '.pdf', '.docx', '.doc', '.xlsx', '.xls', '.pptx', '.ppt', '.odt', '.ods', '.odp'
    ])

    @classmethod
    def get_extension(cls, filename: str) -> str:
        """Lower-cased extension including the dot, or '' when there is none."""
        parts = filename.lower().rsplit('.', 1)
        return f".{parts[1]}" if len(parts) > 1 else ''

    @classmethod
    def is_image(cls, filename: str) -> bool:
        return cls.get_extension(filename) in cls.IMAGE_EXTENSIONS

    @classmethod
    def is_text(cls, filename: str) -> bool:
        return cls.get_extension(filename) in cls.TEXT_EXTENSIONS

    @classmethod
    def is_document(cls, filename: str) -> bool:
        return cls.get_extension(filename) in cls.DOCUMENT_EXTENSIONS

    @classmethod
    def get_file_type(cls, filename: str) -> FileCategory:
        if cls.is_image(filename):
            return FileCategory.IMAGE
        if cls.is_text(filename):
            return FileCategory.TEXT
        if cls.is_document(filename):
            return FileCategory.DOCUMENT
        return FileCategory.OTHER


def guess_mime_type(filename: str) -> str:
    """MIME type from the file name, ``application/octet-stream`` when unknown."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"
