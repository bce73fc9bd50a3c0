"""Transcript chunker — segment windows with overlap, or sentence packing.

Two modes:
  windowed  ``len(segments) >= 10`` and ``overlap_segments > 0``.
            Slide a window of ``segments_per_window`` segments with stride
            ``segments_per_window - overlap`` (overlap clamped to window - 1).
            Each window becomes one chunk, timed from its first segment's
            offset to its last segment's offset + duration.
  simple    Short transcripts or overlap disabled. Join all segment texts,
            split into sentences on ``[.!?]``, greedily pack sentences up to
            ``target_words`` (an oversized sentence becomes its own chunk) and
            map each chunk's character span back to segments for timing.
"""

from __future__ import annotations

import bisect
import logging

from vidask.ingest.base import BaseChunker
from vidask.models import Chunk, TimedSegment

logger = logging.getLogger(__name__)

_MIN_WINDOWED_SEGMENTS = 10
_SEPARATOR = " "


class TranscriptChunker(BaseChunker):
    """Split timed transcript segments into overlapping, timestamped chunks.

    Default: 500 words target / 1 segment overlap / 5 segments per window.
    """

    def __init__(
        self,
        target_words: int = 500,
        overlap_segments: int = 1,
        segments_per_window: int = 5,
        min_chunk_chars: int = 10,
    ) -> None:
        super().__init__(target_words=target_words, overlap_segments=overlap_segments)
        if segments_per_window < 2:
            raise ValueError("segments_per_window must be >= 2")
        self.segments_per_window = segments_per_window
        self.min_chunk_chars = min_chunk_chars

    def chunk(self, segments: list[TimedSegment]) -> list[Chunk]:
        if not any(s.text.strip() for s in segments):
            logger.warning("Empty transcript — no chunks created")
            return []

        if self.overlap_segments <= 0 or len(segments) < _MIN_WINDOWED_SEGMENTS:
            chunks = self._chunk_simple(segments)
        else:
            chunks = self._chunk_windowed(segments)

        if chunks:
            avg = round(sum(c.word_count for c in chunks) / len(chunks))
            logger.info("Created %d chunks (avg: %d words/chunk)", len(chunks), avg)
        return chunks

    # ------------------------------------------------------------------
    # Windowed mode
    # ------------------------------------------------------------------

    def _chunk_windowed(self, segments: list[TimedSegment]) -> list[Chunk]:
        width = self.segments_per_window
        overlap = min(self.overlap_segments, width - 1)
        stride = width - overlap

        chunks: list[Chunk] = []
        for start in range(0, len(segments), stride):
            window = segments[start : start + width]
            text = _SEPARATOR.join(s.text for s in window).strip()
            words = self.count_words(text)
            if len(text) >= self.min_chunk_chars and words > 0:
                chunks.append(
                    Chunk(
                        index=len(chunks),
                        text=text,
                        word_count=words,
                        start_timestamp_s=window[0].start_s,
                        end_timestamp_s=window[-1].end_s,
                    )
                )
            # Once a window reaches the last segment, later windows would only
            # repeat its tail.
            if start + width >= len(segments):
                break
        return chunks

    # ------------------------------------------------------------------
    # Simple mode
    # ------------------------------------------------------------------

    def _chunk_simple(self, segments: list[TimedSegment]) -> list[Chunk]:
        full_text = _SEPARATOR.join(s.text for s in segments)
        # Character position at which each segment starts inside full_text.
        starts: list[int] = []
        pos = 0
        for seg in segments:
            starts.append(pos)
            pos += len(seg.text) + len(_SEPARATOR)

        groups = self._pack_sentences(full_text)
        chunks: list[Chunk] = []
        for spans in groups:
            text = _SEPARATOR.join(full_text[a:b] for a, b in spans)
            first_char = spans[0][0]
            last_char = spans[-1][1] - 1
            chunks.append(
                Chunk(
                    index=len(chunks),
                    text=text,
                    word_count=self.count_words(text),
                    start_timestamp_s=segments[_segment_at(starts, first_char)].start_s,
                    end_timestamp_s=segments[_segment_at(starts, last_char)].end_s,
                )
            )
        return chunks

    def _pack_sentences(self, text: str) -> list[list[tuple[int, int]]]:
        """Greedily group sentence spans so that each group stays within ``target_words``."""
        groups: list[list[tuple[int, int]]] = []
        current: list[tuple[int, int]] = []
        current_words = 0

        for span in self.split_sentences(text):
            words = self.count_words(text[span[0] : span[1]])
            if words > self.target_words:
                if current:
                    groups.append(current)
                    current, current_words = [], 0
                groups.append([span])
            elif current_words + words <= self.target_words:
                current.append(span)
                current_words += words
            else:
                groups.append(current)
                current, current_words = [span], words

        if current:
            groups.append(current)
        return groups


def _segment_at(starts: list[int], char_pos: int) -> int:
    """Index of the segment whose text contains *char_pos* (separators map to the left)."""
    return max(0, bisect.bisect_right(starts, char_pos) - 1)
