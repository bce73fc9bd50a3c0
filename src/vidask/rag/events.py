"""Typed events emitted while processing a corpus or answering a question.

A request's output is a closed set of variants:

  ProgressEvent   stage transition / progress inside a stage
  TokenEvent      one generated text fragment (stage=generate, status=streaming)
  CompleteEvent   terminal success: answer, sources, performance
  FailedEvent     terminal failure: error kind + message

Every event serialises to a flat dict (``to_dict``) and to a server-sent
events frame (``to_sse``).
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union


class Stage(str, Enum):
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORING = "storing"
    SEARCH = "search"
    GENERATE = "generate"


class Status(str, Enum):
    PROCESSING = "processing"
    PROGRESS = "progress"
    STREAMING = "streaming"
    COMPLETE = "complete"
    SKIPPED = "skipped"


class _Event(ABC):
    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        ...

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"


@dataclass(frozen=True)
class ProgressEvent(_Event):
    stage: Stage
    status: Status
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "progress",
            "stage": self.stage.value,
            "status": self.status.value,
            "message": self.message,
            **self.data,
        }


@dataclass(frozen=True)
class TokenEvent(_Event):
    chunk: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "token",
            "stage": Stage.GENERATE.value,
            "status": Status.STREAMING.value,
            "chunk": self.chunk,
        }


@dataclass(frozen=True)
class SourceRef:
    """A passage used to ground the answer, as reported to the caller.

    Attributes:
        segment: 1-based passage number (matches ``[Segment n]`` in the prompt).
        index: Chunk index within the corpus.
        text: Chunk text, truncated for display.
        similarity: Cosine similarity rounded to 3 decimals.
    """

    segment: int
    index: int
    text: str
    similarity: float
    timestamp_s: float | None = None
    end_timestamp_s: float | None = None


@dataclass(frozen=True)
class Performance:
    duration_s: float
    input_tokens: int
    output_tokens: int
    tokens_per_second: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class CompleteEvent(_Event):
    answer: str
    question: str
    sources: list[SourceRef] = field(default_factory=list)
    performance: Performance | None = None
    keywords: list[str] = field(default_factory=list)
    match_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        perf = None
        if self.performance is not None:
            perf = {**asdict(self.performance), "total_tokens": self.performance.total_tokens}
        return {
            "type": "complete",
            "stage": Stage.GENERATE.value,
            "status": Status.COMPLETE.value,
            "answer": self.answer,
            "question": self.question,
            "sources": [asdict(s) for s in self.sources],
            "performance": perf,
            "keywords": list(self.keywords),
            "match_count": self.match_count,
        }


@dataclass(frozen=True)
class FailedEvent(_Event):
    kind: str
    message: str
    stage: Stage | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "failed",
            "status": "error",
            "stage": self.stage.value if self.stage is not None else None,
            "kind": self.kind,
            "error": self.message,
        }


AskEvent = Union[ProgressEvent, TokenEvent, CompleteEvent, FailedEvent]
