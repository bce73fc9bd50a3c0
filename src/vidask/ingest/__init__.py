"""vidask ingest — transcript chunking and corpus source helpers."""

from vidask.ingest.base import BaseChunker
from vidask.ingest.sources import load_segments, parse_manual_transcript
from vidask.ingest.transcript import TranscriptChunker

__all__ = [
    "BaseChunker",
    "TranscriptChunker",
    "load_segments",
    "parse_manual_transcript",
]
