"""In-memory vector collections with exact cosine top-K search.

One collection per corpus id. A collection is an immutable snapshot (records
plus a read-only embedding matrix); ``replace_collection`` builds the new
snapshot first and then swaps the reference under a lock, so a concurrent
reader always sees either the complete old or the complete new record set.
Searches run on the snapshot outside the lock.

Search is a linear scan, O(N·D) per query, which is fine for the few hundred
chunks a transcript produces. Nothing is persisted across process restarts.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from vidask.errors import DimensionMismatchError, InconsistentDimensionError
from vidask.models import Chunk, SimilarityMatch, VectorRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Vector math
# ------------------------------------------------------------------


def normalize(vector: Sequence[float]) -> list[float]:
    """Return *vector* scaled to unit L2 norm.

    A zero (or non-finite) vector is returned as all zeros rather than NaN.
    """
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm == 0.0 or not np.isfinite(norm):
        return [0.0] * len(arr)
    return (arr / norm).tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)``, clipped to [-1, 1].

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Embedding dimensions don't match: {len(a)} vs {len(b)}"
        )
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


# ------------------------------------------------------------------
# Snapshots
# ------------------------------------------------------------------


@dataclass(frozen=True)
class _Collection:
    records: tuple[VectorRecord, ...]
    matrix: np.ndarray  # (N, D), read-only
    norms: np.ndarray  # (N,)
    chunk_indices: np.ndarray  # (N,), for deterministic tie-breaks

    @property
    def dimension(self) -> int:
        return int(self.matrix.shape[1])


@dataclass(frozen=True)
class StoreStats:
    corpus_count: int
    total_chunks: int
    corpora: dict[str, int]  # corpus_id → chunk count


class VectorStore:
    """Keyed store of embedded chunks, one atomically replaceable collection per corpus."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, _Collection] = {}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_collection(
        self,
        corpus_id: str,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
    ) -> int:
        """Install a new collection for *corpus_id*, replacing any previous one.

        Installing zero chunks removes the corpus.

        Returns:
            Number of records stored.

        Raises:
            DimensionMismatchError: If ``len(chunks) != len(embeddings)``.
            InconsistentDimensionError: If the embeddings differ in length.
        """
        if len(chunks) != len(embeddings):
            raise DimensionMismatchError(
                f"Chunk count ({len(chunks)}) doesn't match embedding count ({len(embeddings)})"
            )

        dims = {len(e) for e in embeddings}
        if len(dims) > 1:
            raise InconsistentDimensionError(
                f"Embeddings for corpus '{corpus_id}' have mixed dimensions: {sorted(dims)}"
            )
        if 0 in dims:
            raise InconsistentDimensionError(
                f"Embeddings for corpus '{corpus_id}' must not be empty vectors"
            )

        if not chunks:
            self.clear(corpus_id)
            return 0

        collection = _build_collection(corpus_id, chunks, embeddings)
        with self._lock:
            self._collections[corpus_id] = collection

        logger.info("Stored %d chunks for corpus %s", len(collection.records), corpus_id)
        return len(collection.records)

    def clear(self, corpus_id: str) -> None:
        with self._lock:
            self._collections.pop(corpus_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._collections.clear()
        logger.info("Vector store cleared")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        corpus_id: str,
        query_embedding: Sequence[float],
        top_k: int = 3,
    ) -> list[SimilarityMatch]:
        """Return up to *top_k* records most similar to *query_embedding*, best first.

        An unknown corpus yields an empty list, not an error: "not processed
        yet" is a normal state for a corpus. Ties are broken by ascending
        chunk index. A zero-norm query scores 0 against every record.

        Raises:
            DimensionMismatchError: If the query dimension differs from the collection's.
        """
        collection = self._snapshot(corpus_id)
        if collection is None:
            logger.warning("No chunks found for corpus: %s", corpus_id)
            return []
        if top_k < 1:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != collection.dimension:
            raise DimensionMismatchError(
                f"Query has {query.shape[-1] if query.ndim else 0} dimensions, "
                f"corpus '{corpus_id}' has {collection.dimension}"
            )

        scores = _cosine_scores(collection, query)
        # lexsort: last key is primary → score descending, then chunk index ascending.
        order = np.lexsort((collection.chunk_indices, -scores))[:top_k]
        matches = [
            SimilarityMatch(record=collection.records[i], score=float(scores[i])) for i in order
        ]

        if matches:
            logger.debug(
                "Searched %d chunks in %s (top similarity: %.3f)",
                len(collection.records),
                corpus_id,
                matches[0].score,
            )
        return matches

    def has_corpus(self, corpus_id: str) -> bool:
        return self._snapshot(corpus_id) is not None

    def records(self, corpus_id: str) -> tuple[VectorRecord, ...]:
        """Immutable view of the records currently stored for *corpus_id* (empty if unknown)."""
        collection = self._snapshot(corpus_id)
        return collection.records if collection is not None else ()

    def dimension(self, corpus_id: str) -> int | None:
        collection = self._snapshot(corpus_id)
        return collection.dimension if collection is not None else None

    def stats(self) -> StoreStats:
        with self._lock:
            corpora = {cid: len(c.records) for cid, c in self._collections.items()}
        return StoreStats(
            corpus_count=len(corpora),
            total_chunks=sum(corpora.values()),
            corpora=corpora,
        )

    def _snapshot(self, corpus_id: str) -> _Collection | None:
        with self._lock:
            return self._collections.get(corpus_id)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_collection(
    corpus_id: str,
    chunks: Sequence[Chunk],
    embeddings: Sequence[Sequence[float]],
) -> _Collection:
    records = tuple(
        VectorRecord(
            id=f"{corpus_id}-{chunk.index}",
            chunk=chunk,
            embedding=tuple(float(v) for v in embedding),
            corpus_id=corpus_id,
        )
        for chunk, embedding in zip(chunks, embeddings)
    )
    matrix = np.asarray([r.embedding for r in records], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    indices = np.asarray([r.chunk.index for r in records], dtype=np.int64)
    for arr in (matrix, norms, indices):
        arr.setflags(write=False)
    return _Collection(records=records, matrix=matrix, norms=norms, chunk_indices=indices)


def _cosine_scores(collection: _Collection, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against every row; zero-norm rows/query score 0."""
    query_norm = float(np.linalg.norm(query))
    if query_norm == 0.0:
        return np.zeros(len(collection.records), dtype=np.float64)
    dots = collection.matrix @ query
    denom = collection.norms * query_norm
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(scores, -1.0, 1.0)
