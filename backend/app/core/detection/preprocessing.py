"""
Path and text normalisation helpers.
"""

import re
from collections import Counter
from typing import List, Optional

from .hashing import normalize_text

_DIGITS = re.compile(r"\d+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE_RUN = re.compile(r"\s+")


class PathUtils:
    """Separator- and case-insensitive path handling."""

    @classmethod
    def normalize_path(cls, path: str) -> str:
        """Forward slashes only, lower-cased."""
        return path.replace("\\", "/").lower()

    @classmethod
    def relative_path(cls, full_path: str, base_path: str) -> str:
        """
        Path of ``full_path`` below ``base_path``.

        Both paths are normalised first. A path outside the base comes back
        normalised but otherwise whole.
        """
        full = cls.normalize_path(full_path)
        base = cls.normalize_path(base_path)
        if full.startswith(base):
            relative = full[len(base):]
            return relative[1:] if relative.startswith("/") else relative
        return full

    @classmethod
    def get_base_name(cls, filename: str) -> str:
        """File name without its last extension."""
        parts = filename.split(".")
        return ".".join(parts[:-1]) if len(parts) > 1 else filename

    @classmethod
    def get_extension(cls, filename: str) -> str:
        """Lower-cased last extension without the dot, or ''."""
        parts = filename.split(".")
        return parts[-1].lower() if len(parts) > 1 else ""


class TextPreprocessor:
    """Text cleanup and keyword extraction ahead of embedding or display."""

    STOP_WORDS = frozenset([
        'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
        'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'being', 'have',
        'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should',
        'may', 'might', 'must', 'can', 'this', 'that', 'these', 'those'
    ])

    @classmethod
    def preprocess_text(cls, text: str, remove_numbers: bool = False,
                        remove_punctuation: bool = False,
                        min_word_length: Optional[int] = None) -> str:
        """
        Normalise text for comparison.

        Whitespace is collapsed and case folded as for content hashing. Digit
        runs are removed and punctuation becomes a space when asked; words
        shorter than ``min_word_length`` are dropped last.

        Args:
            text: Raw text
            remove_numbers: Strip digit runs
            remove_punctuation: Replace non-word characters with a space
            min_word_length: Shortest word to keep

        Returns:
            Processed text
        """
        processed = normalize_text(text)

        if remove_numbers:
            processed = _DIGITS.sub("", processed)

        if remove_punctuation:
            processed = _PUNCTUATION.sub(" ", processed)

        if min_word_length:
            processed = " ".join(
                word for word in _WHITESPACE_RUN.split(processed) if len(word) >= min_word_length
            )

        return processed

    @classmethod
    def extract_keywords(cls, text: str, max_keywords: int = 10) -> List[str]:
        """Most frequent words longer than two letters, stop words excluded; ties keep first use."""
        words = _WHITESPACE_RUN.split(_PUNCTUATION.sub("", text.lower()))
        counts = Counter(word for word in words if len(word) > 2 and word not in cls.STOP_WORDS)
        # Counter keeps insertion order and sorted() is stable
        ranked = sorted(counts, key=lambda word: counts[word], reverse=True)
        return ranked[:max_keywords]
