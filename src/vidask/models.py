"""Domain models shared by the chunker, the vector store and the RAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass

# Plain float sequence as produced by an embedding model (L2-normalised by the provider).
Embedding = list[float]


@dataclass(frozen=True)
class TimedSegment:
    """One caption / transcript line with its position in the recording."""

    text: str
    offset_ms: int
    duration_ms: int = 0

    @property
    def start_s(self) -> float:
        return self.offset_ms / 1000

    @property
    def end_s(self) -> float:
        return (self.offset_ms + self.duration_ms) / 1000


@dataclass(frozen=True)
class Chunk:
    """A contiguous span of transcript text, sized for embedding.

    Attributes:
        index: Zero-based position within the corpus (contiguous, no gaps).
        text: Chunk text as embedded and shown to the model.
        word_count: Whitespace-separated word count; always >= 1.
        start_timestamp_s: Start of the first contributing segment, if known.
        end_timestamp_s: End of the last contributing segment, if known.
    """

    index: int
    text: str
    word_count: int
    start_timestamp_s: float | None = None
    end_timestamp_s: float | None = None


@dataclass(frozen=True)
class VectorRecord:
    id: str
    chunk: Chunk
    embedding: tuple[float, ...]
    corpus_id: str

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class SimilarityMatch:
    """A stored record together with its cosine similarity to the query (in [-1, 1])."""

    record: VectorRecord
    score: float


@dataclass(frozen=True)
class ChatTurn:
    role: str  # user | assistant
    content: str
