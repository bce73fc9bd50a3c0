"""Corpus processing: chunk → batch-embed → atomically install in the vector store.

Progress is reported through an optional ``on_event`` callback as
ProgressEvents for the ``chunking``, ``embedding`` and ``storing`` stages.
Embedding produces data only; the store sees nothing until the final
``replace_collection`` swap, so readers never observe a half-processed corpus.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from vidask.errors import EmptyInputError
from vidask.ingest.transcript import TranscriptChunker
from vidask.models import TimedSegment
from vidask.rag.embeddings import EmbeddingProvider
from vidask.rag.events import ProgressEvent, Stage, Status
from vidask.store.vectors import VectorStore

logger = logging.getLogger(__name__)

EventCallback = Callable[[ProgressEvent], None]

# Embedding progress is reported every N items (and on the last one).
_PROGRESS_EVERY = 5


@dataclass(frozen=True)
class ProcessResult:
    corpus_id: str
    chunk_count: int
    embedding_count: int
    skipped: bool = False


class CorpusProcessor:
    """Turn a corpus's timed segments into a searchable vector collection."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        chunker: TranscriptChunker | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._chunker = chunker or TranscriptChunker()

    async def process_corpus(
        self,
        corpus_id: str,
        segments: Sequence[TimedSegment],
        *,
        skip_existing: bool = False,
        on_event: EventCallback | None = None,
    ) -> ProcessResult:
        """Chunk, embed and store *segments* as the collection for *corpus_id*.

        Any previous collection for the corpus is replaced in one step.

        Args:
            corpus_id: Identifier of the corpus (e.g. video or persona id).
            segments: Ordered transcript segments.
            skip_existing: Return the stored counts without re-processing when
                the corpus is already present.
            on_event: Receives ProgressEvents as processing advances.

        Raises:
            EmptyInputError: If chunking yields no chunks.
            EmbeddingError: If the embedding provider fails.
        """
        emit = on_event or (lambda _event: None)

        if skip_existing and self._store.has_corpus(corpus_id):
            count = len(self._store.records(corpus_id))
            for stage in (Stage.CHUNKING, Stage.EMBEDDING, Stage.STORING):
                emit(ProgressEvent(stage, Status.SKIPPED, "Already processed - using stored chunks"))
            logger.info("Corpus %s already processed (%d chunks) — skipping", corpus_id, count)
            return ProcessResult(corpus_id, count, count, skipped=True)

        # ---- Chunk ----
        emit(ProgressEvent(Stage.CHUNKING, Status.PROCESSING, "Chunking text with context overlap..."))
        chunks = self._chunker.chunk(list(segments))
        if not chunks:
            raise EmptyInputError(f"Transcript for '{corpus_id}' produced no chunks (empty text)")
        emit(
            ProgressEvent(
                Stage.CHUNKING,
                Status.COMPLETE,
                f"Created {len(chunks)} chunks",
                {"chunk_count": len(chunks)},
            )
        )

        # ---- Embed ----
        emit(
            ProgressEvent(
                Stage.EMBEDDING,
                Status.PROCESSING,
                "Creating embeddings...",
                {"chunk_count": len(chunks)},
            )
        )

        def _on_progress(done: int, total: int) -> None:
            if done % _PROGRESS_EVERY == 0 or done == total:
                emit(
                    ProgressEvent(
                        Stage.EMBEDDING,
                        Status.PROGRESS,
                        f"Generating embeddings... {done}/{total}",
                        {"embedding_count": done, "chunk_count": total},
                    )
                )

        embeddings = await self._embedder.embed_batch([c.text for c in chunks], _on_progress)
        dimension = len(embeddings[0]) if embeddings else 0
        emit(
            ProgressEvent(
                Stage.EMBEDDING,
                Status.COMPLETE,
                f"Created {len(embeddings)} embeddings ({dimension} dimensions each)",
                {"embedding_count": len(embeddings), "dimension": dimension},
            )
        )

        # ---- Store ----
        emit(ProgressEvent(Stage.STORING, Status.PROCESSING, "Building vector collection..."))
        stored = self._store.replace_collection(corpus_id, chunks, embeddings)
        emit(
            ProgressEvent(
                Stage.STORING,
                Status.COMPLETE,
                "Ready for questions!",
                {"corpus_id": corpus_id, "chunk_count": stored},
            )
        )

        return ProcessResult(corpus_id, len(chunks), len(embeddings))
