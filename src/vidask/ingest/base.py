"""Base chunker interface and shared text helpers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from vidask.models import Chunk, TimedSegment

# A sentence is a run of non-terminators followed by terminators, or by end of text
# (so a trailing unpunctuated sentence is never lost).
_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")


class BaseChunker(ABC):
    """Abstract base for transcript chunkers.

    Subclasses implement ``chunk()``; the word-count target and segment
    overlap are validated once here.
    """

    def __init__(self, target_words: int = 500, overlap_segments: int = 1) -> None:
        if target_words < 1:
            raise ValueError("target_words must be >= 1")
        if overlap_segments < 0:
            raise ValueError("overlap_segments must be >= 0")
        self.target_words = target_words
        self.overlap_segments = overlap_segments

    @abstractmethod
    def chunk(self, segments: list[TimedSegment]) -> list[Chunk]:
        """Split *segments* into Chunks.

        Returns:
            Ordered list of Chunk objects with contiguous zero-based ``index``;
            empty when the segments carry no text.
        """

    @staticmethod
    def count_words(text: str) -> int:
        return len(text.split())

    @staticmethod
    def split_sentences(text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` character spans of the sentences in *text*.

        Spans are trimmed of surrounding whitespace; blank spans are omitted.
        """
        spans: list[tuple[int, int]] = []
        for match in _SENTENCE_RE.finditer(text):
            raw = match.group()
            stripped = raw.strip()
            if not stripped:
                continue
            start = match.start() + (len(raw) - len(raw.lstrip()))
            spans.append((start, start + len(stripped)))
        return spans
