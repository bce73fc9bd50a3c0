"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from vidask.errors import EmbeddingError, GenerationError
from vidask.models import Chunk, TimedSegment
from vidask.rag.embeddings import EmbeddingProvider
from vidask.rag.generation import GenerationProvider, GenerationRequest
from vidask.store.vectors import VectorStore, normalize


class FakeEmbedder(EmbeddingProvider):
    """Deterministic embedder: looks texts up in *table*, else uses *default*."""

    def __init__(self, table: dict[str, list[float]] | None = None, default=(1.0, 0.0)) -> None:
        self.table = table or {}
        self.default = list(default)
        self.calls: list[str] = []
        self.fail = False

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("model offline")
        return normalize(self.table.get(text, self.default))


class FakeGenerator(GenerationProvider):
    """Streams *tokens* and records each request; optionally fails after N tokens."""

    def __init__(self, tokens=("Hello", " there", "!"), fail_after: int | None = None) -> None:
        self.tokens = list(tokens)
        self.fail_after = fail_after
        self.requests: list[GenerationRequest] = []
        self.closed = False

    async def generate(self, request: GenerationRequest) -> AsyncIterator[str]:
        self.requests.append(request)
        try:
            for i, token in enumerate(self.tokens):
                if self.fail_after is not None and i >= self.fail_after:
                    raise GenerationError("stream dropped")
                yield token
        finally:
            self.closed = True


@pytest.fixture
def store() -> VectorStore:
    return VectorStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def toy_chunks() -> list[Chunk]:
    """Three chunks matching the 2-D toy embeddings [1,0], [0,1], [0.707,0.707]."""
    return [
        Chunk(index=0, text="Intro about rockets.", word_count=3, start_timestamp_s=0.0, end_timestamp_s=5.0),
        Chunk(index=1, text="Cooking pasta at home.", word_count=4, start_timestamp_s=5.0, end_timestamp_s=10.0),
        Chunk(index=2, text="Rockets and pasta together.", word_count=4, start_timestamp_s=10.0, end_timestamp_s=15.0),
    ]


@pytest.fixture
def toy_embeddings() -> list[list[float]]:
    return [[1.0, 0.0], [0.0, 1.0], [0.707, 0.707]]


@pytest.fixture
def two_segments() -> list[TimedSegment]:
    return [
        TimedSegment("Hello world.", 0, 1000),
        TimedSegment("This is a test.", 1000, 1000),
    ]
