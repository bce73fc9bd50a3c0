"""Tests for the in-memory vector store and cosine helpers."""

from __future__ import annotations

import math
import threading

import pytest

from vidask.errors import DimensionMismatchError, InconsistentDimensionError
from vidask.models import Chunk
from vidask.store.vectors import VectorStore, cosine_similarity, normalize


def _chunks(n: int, prefix: str = "chunk") -> list[Chunk]:
    return [Chunk(index=i, text=f"{prefix} {i}", word_count=2) for i in range(n)]


# ------------------------------------------------------------------
# normalize / cosine_similarity
# ------------------------------------------------------------------


@pytest.mark.parametrize("vector", [[3.0, 4.0], [1e-6, 2e-6, 3e-6], [-2.0, 0.5, 9.0, 1.0]])
def test_normalize_returns_unit_vector(vector):
    unit = normalize(vector)
    assert math.isclose(math.sqrt(sum(v * v for v in unit)), 1.0, abs_tol=1e-4)


def test_normalize_zero_vector_stays_zero():
    assert normalize([0.0, 0.0, 0.0]) == [0.0, 0.0, 0.0]


def test_cosine_self_similarity_is_one():
    v = [0.3, -0.2, 0.9]
    assert cosine_similarity(v, v) == pytest.approx(1.0)


def test_cosine_is_symmetric_and_bounded():
    a, b = [0.1, 0.7, -0.4], [-0.9, 0.2, 0.3]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert -1.0 <= cosine_similarity(a, b) <= 1.0
    assert cosine_similarity(a, [-x for x in a]) == pytest.approx(-1.0)


def test_cosine_zero_vector_scores_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_cosine_dimension_mismatch():
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


# ------------------------------------------------------------------
# search
# ------------------------------------------------------------------


def test_toy_search_orders_by_similarity(store, toy_chunks, toy_embeddings):
    store.replace_collection("video-1", toy_chunks, toy_embeddings)

    matches = store.search("video-1", [1.0, 0.0], top_k=2)

    assert [m.record.chunk.index for m in matches] == [0, 2]
    assert matches[0].score == pytest.approx(1.0)
    assert matches[1].score == pytest.approx(0.707, abs=1e-3)


def test_search_never_exceeds_top_k_and_is_sorted(store):
    embeddings = [[math.cos(i / 5), math.sin(i / 5)] for i in range(20)]
    store.replace_collection("c", _chunks(20), embeddings)

    matches = store.search("c", [0.2, 0.9], top_k=5)

    assert len(matches) == 5
    scores = [m.score for m in matches]
    assert scores == sorted(scores, reverse=True)


def test_search_top_k_larger_than_collection(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    assert len(store.search("c", [1.0, 0.0], top_k=10)) == 3


def test_search_ties_break_by_chunk_index(store):
    chunks = [Chunk(index=i, text=f"t{i}", word_count=1) for i in (2, 0, 1)]
    store.replace_collection("c", chunks, [[1.0, 0.0]] * 3)

    matches = store.search("c", [1.0, 0.0], top_k=3)
    assert [m.record.chunk.index for m in matches] == [0, 1, 2]


def test_search_zero_query_scores_zero(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)

    matches = store.search("c", [0.0, 0.0], top_k=3)
    assert [m.score for m in matches] == [0.0, 0.0, 0.0]
    assert [m.record.chunk.index for m in matches] == [0, 1, 2]


def test_search_unknown_corpus_returns_empty(store):
    assert store.search("never-processed", [1.0, 0.0]) == []


def test_search_non_positive_top_k_returns_empty(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    assert store.search("c", [1.0, 0.0], top_k=0) == []


def test_search_query_dimension_mismatch(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    with pytest.raises(DimensionMismatchError):
        store.search("c", [1.0, 0.0, 0.0])


# ------------------------------------------------------------------
# replace_collection
# ------------------------------------------------------------------


def test_replace_count_mismatch(store, toy_chunks):
    with pytest.raises(DimensionMismatchError):
        store.replace_collection("c", toy_chunks, [[1.0, 0.0]])


def test_replace_mixed_dimensions(store):
    with pytest.raises(InconsistentDimensionError):
        store.replace_collection("c", _chunks(2), [[1.0, 0.0], [1.0, 0.0, 0.0]])


def test_replace_failure_keeps_previous_collection(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    with pytest.raises(InconsistentDimensionError):
        store.replace_collection("c", _chunks(2), [[1.0], [1.0, 0.0]])
    assert len(store.records("c")) == 3


def test_replace_swaps_whole_collection(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    store.replace_collection("c", _chunks(1, "new"), [[0.0, 1.0]])

    records = store.records("c")
    assert [r.chunk.text for r in records] == ["new 0"]
    assert records[0].id == "c-0"
    assert records[0].corpus_id == "c"


def test_replace_with_no_chunks_removes_corpus(store, toy_chunks, toy_embeddings):
    store.replace_collection("c", toy_chunks, toy_embeddings)
    assert store.replace_collection("c", [], []) == 0
    assert not store.has_corpus("c")


def test_corpora_are_independent(store, toy_chunks, toy_embeddings):
    store.replace_collection("a", toy_chunks, toy_embeddings)
    store.replace_collection("b", _chunks(2), [[0.0, 1.0, 0.0], [1.0, 0.0, 0.0]])

    assert store.dimension("a") == 2
    assert store.dimension("b") == 3
    assert store.dimension("missing") is None


def test_clear_and_stats(store, toy_chunks, toy_embeddings):
    store.replace_collection("a", toy_chunks, toy_embeddings)
    store.replace_collection("b", _chunks(2), [[1.0, 0.0], [0.0, 1.0]])

    stats = store.stats()
    assert stats.corpus_count == 2
    assert stats.total_chunks == 5
    assert stats.corpora == {"a": 3, "b": 2}

    store.clear("a")
    assert not store.has_corpus("a")
    store.clear_all()
    assert store.stats().corpus_count == 0


# ------------------------------------------------------------------
# Concurrency
# ------------------------------------------------------------------


def test_concurrent_search_sees_old_or_new_never_mixed(store):
    """Readers racing a writer only ever see one complete generation of records."""
    size = 50
    old = (_chunks(size, "old"), [[1.0, 0.0]] * size)
    new = (_chunks(size, "new"), [[0.0, 1.0]] * size)
    store.replace_collection("c", *old)

    stop = threading.Event()
    problems: list[str] = []

    def writer() -> None:
        for i in range(200):
            store.replace_collection("c", *(new if i % 2 == 0 else old))
        stop.set()

    def reader() -> None:
        while not stop.is_set():
            matches = store.search("c", [1.0, 1.0], top_k=size)
            prefixes = {m.record.chunk.text.split()[0] for m in matches}
            if len(matches) != size or len(prefixes) != 1:
                problems.append(f"{len(matches)} matches, generations {sorted(prefixes)}")

    threads = [threading.Thread(target=reader) for _ in range(4)]
    threads.append(threading.Thread(target=writer))
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert problems == []
