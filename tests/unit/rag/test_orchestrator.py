"""Tests for RetrievalOrchestrator — event order, greetings, failures, cancellation."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from vidask.config import RetrievalCfg
from vidask.models import ChatTurn, Chunk
from vidask.rag.events import CompleteEvent, FailedEvent, ProgressEvent, Stage, TokenEvent
from vidask.rag.generation import GenerationProvider, GenerationRequest
from vidask.rag.orchestrator import RetrievalOrchestrator, State, _Run


async def _collect(agen) -> list:
    return [event async for event in agen]


def _shape(events) -> list[tuple[str, str]]:
    """(stage, status) per event, with terminal events labelled by type."""
    out = []
    for e in events:
        if isinstance(e, ProgressEvent):
            out.append((e.stage.value, e.status.value))
        elif isinstance(e, TokenEvent):
            out.append(("generate", "token"))
        elif isinstance(e, CompleteEvent):
            out.append(("complete", ""))
        elif isinstance(e, FailedEvent):
            out.append(("failed", e.kind))
    return out


@pytest.fixture
def loaded_store(store, toy_chunks, toy_embeddings):
    store.replace_collection("video-1", toy_chunks, toy_embeddings)
    return store


@pytest.fixture
def orchestrator(loaded_store, embedder, generator):
    return RetrievalOrchestrator(loaded_store, embedder, generator)


class _SlowGenerator(GenerationProvider):
    """Yields one token, then blocks until cancelled."""

    def __init__(self) -> None:
        self.closed = False

    async def generate(self, request: GenerationRequest) -> AsyncIterator[str]:
        try:
            yield "first"
            await asyncio.sleep(30)
            yield "never"
        finally:
            self.closed = True


# ------------------------------------------------------------------
# Grounded answers
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_grounded_answer_event_order(orchestrator):
    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))

    assert _shape(events) == [
        ("embedding", "processing"),
        ("embedding", "complete"),
        ("search", "processing"),
        ("search", "complete"),
        ("generate", "processing"),
        ("generate", "token"),
        ("generate", "token"),
        ("generate", "token"),
        ("complete", ""),
    ]


@pytest.mark.asyncio
async def test_grounded_answer_sources_and_context(orchestrator, generator):
    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))
    complete = events[-1]

    assert isinstance(complete, CompleteEvent)
    assert complete.answer == "Hello there!"
    assert complete.question == "Tell me about rockets"
    assert complete.match_count == 3
    # [0,1] scores 0.0 → below the 0.3 threshold
    assert [s.index for s in complete.sources] == [0, 2]
    assert [s.segment for s in complete.sources] == [1, 2]
    assert complete.sources[0].similarity == 1.0
    assert complete.sources[1].similarity == 0.707
    assert complete.sources[1].timestamp_s == 10.0

    request = generator.requests[0]
    assert request.conversational is False
    assert [p.text for p in request.passages] == ["Intro about rockets.", "Rockets and pasta together."]
    assert "[Segment 1 (0:00)]:\nIntro about rockets." in request.system_prompt
    assert "[Segment 2 (0:10)]:" in request.system_prompt


@pytest.mark.asyncio
async def test_search_complete_reports_similarities(orchestrator):
    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))
    search_done = events[3]

    assert search_done.data["match_count"] == 3
    assert search_done.data["relevant_count"] == 2
    assert search_done.data["similarities"] == [1.0, 0.707, 0.0]


@pytest.mark.asyncio
async def test_embedding_complete_reports_dimension_and_preview(orchestrator):
    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))
    embedded = events[1]

    assert embedded.data["dimension"] == 2
    assert embedded.data["embedding_preview"] == [1.0, 0.0]


@pytest.mark.asyncio
async def test_complete_reports_performance_and_keywords(orchestrator):
    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))
    complete = events[-1]

    # "Hello"(2) + " there"(2) + "!"(1)
    assert complete.performance.output_tokens == 5
    assert complete.performance.input_tokens > 0
    assert complete.performance.duration_s >= 0
    assert "rockets" in complete.keywords


@pytest.mark.asyncio
async def test_long_sources_are_truncated(store, embedder, generator):
    long_text = "x" * 300
    store.replace_collection("c", [Chunk(0, long_text, 1)], [[1.0, 0.0]])
    orch = RetrievalOrchestrator(store, embedder, generator)

    complete = (await _collect(orch.ask("c", "anything long")))[-1]
    assert complete.sources[0].text == "x" * 200 + "..."


@pytest.mark.asyncio
async def test_nothing_above_threshold_answers_without_context(loaded_store, embedder, generator):
    embedder.table["unrelated question"] = [-1.0, 0.0]
    orch = RetrievalOrchestrator(loaded_store, embedder, generator)

    events = await _collect(orch.ask("video-1", "unrelated question"))
    complete = events[-1]

    assert isinstance(complete, CompleteEvent)
    assert complete.sources == []
    assert complete.match_count == 3
    assert events[3].data["relevant_count"] == 0
    assert "No specific context found" in generator.requests[0].system_prompt


@pytest.mark.asyncio
async def test_threshold_is_configurable(loaded_store, embedder, generator):
    orch = RetrievalOrchestrator(
        loaded_store, embedder, generator, RetrievalCfg(similarity_threshold=0.9)
    )
    complete = (await _collect(orch.ask("video-1", "Tell me about rockets")))[-1]
    assert [s.index for s in complete.sources] == [0]


@pytest.mark.asyncio
async def test_history_is_trimmed_and_persona_applied(orchestrator, generator):
    history = [ChatTurn("user" if i % 2 == 0 else "assistant", f"turn {i}") for i in range(8)]
    await _collect(orchestrator.ask("video-1", "Tell me about rockets", history, persona_name="Ada"))

    request = generator.requests[0]
    assert [t.content for t in request.history] == [f"turn {i}" for i in range(3, 8)]
    assert request.system_prompt.startswith("You are Ada,")


# ------------------------------------------------------------------
# Greetings
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_greeting_on_unprocessed_corpus_skips_search(store, embedder, generator):
    orch = RetrievalOrchestrator(store, embedder, generator)

    events = await _collect(orch.ask("never-processed", "hi"))

    assert _shape(events)[:3] == [
        ("embedding", "processing"),
        ("embedding", "complete"),
        ("search", "skipped"),
    ]
    assert events[2].data == {"match_count": 0}
    assert isinstance(events[-1], CompleteEvent)
    assert events[-1].answer == "Hello there!"
    assert events[-1].sources == []
    assert generator.requests[0].conversational is True


@pytest.mark.parametrize(
    "question,expected",
    [
        ("hi", True),
        ("Hello there", True),
        ("  HEY!", True),
        ("What's up?", True),
        ("how's it going today", True),
        ("history of rockets", False),
        ("Tell me hello", False),
        ("", False),
    ],
)
def test_is_greeting(orchestrator, question, expected):
    assert orchestrator.is_greeting(question) is expected


def test_greeting_patterns_are_configurable(store, embedder, generator):
    orch = RetrievalOrchestrator(store, embedder, generator, RetrievalCfg(greeting_patterns=["yo"]))
    assert orch.is_greeting("yo, what's new")
    assert not orch.is_greeting("hello")

    none = RetrievalOrchestrator(store, embedder, generator, RetrievalCfg(greeting_patterns=[]))
    assert not none.is_greeting("hi")


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_question_on_unprocessed_corpus_fails_not_ready(store, embedder, generator):
    orch = RetrievalOrchestrator(store, embedder, generator)

    events = await _collect(orch.ask("never-processed", "history of rockets"))

    assert _shape(events) == [
        ("embedding", "processing"),
        ("embedding", "complete"),
        ("search", "processing"),
        ("failed", "not_ready"),
    ]
    assert events[-1].stage is Stage.SEARCH
    assert generator.requests == []


@pytest.mark.asyncio
async def test_blank_question_fails_immediately(orchestrator, embedder):
    events = await _collect(orchestrator.ask("video-1", "   "))

    assert len(events) == 1
    assert isinstance(events[0], FailedEvent)
    assert events[0].kind == "empty_input"
    assert events[0].stage is None
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_embedding_failure_ends_stream(orchestrator, embedder, generator):
    embedder.fail = True

    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))

    assert _shape(events) == [("embedding", "processing"), ("failed", "embedding")]
    assert events[-1].stage is Stage.EMBEDDING
    assert generator.requests == []


@pytest.mark.asyncio
async def test_generation_failure_after_tokens(orchestrator, generator):
    generator.fail_after = 1

    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))

    assert _shape(events)[-2:] == [("generate", "token"), ("failed", "generation")]
    assert events[-1].stage is Stage.GENERATE
    terminal = [e for e in events if isinstance(e, (CompleteEvent, FailedEvent))]
    assert len(terminal) == 1
    assert generator.closed


@pytest.mark.asyncio
async def test_unexpected_error_becomes_internal_failure(orchestrator, embedder):
    async def boom(text):
        raise KeyError("bug")

    embedder.embed = boom

    events = await _collect(orchestrator.ask("video-1", "Tell me about rockets"))
    assert events[-1].kind == "internal"
    assert events[-1].stage is Stage.EMBEDDING


# ------------------------------------------------------------------
# Cancellation
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_closing_ask_stream_closes_generation(orchestrator, generator):
    stream = orchestrator.ask("video-1", "Tell me about rockets")
    async for event in stream:
        if isinstance(event, TokenEvent):
            break
    await stream.aclose()

    assert generator.closed
    assert len(generator.requests) == 1


@pytest.mark.asyncio
async def test_cancelling_consumer_task_closes_generation(loaded_store, embedder):
    slow = _SlowGenerator()
    orch = RetrievalOrchestrator(loaded_store, embedder, slow)
    first_token = asyncio.Event()
    seen: list = []

    async def consume() -> None:
        async for event in orch.ask("video-1", "Tell me about rockets"):
            seen.append(event)
            if isinstance(event, TokenEvent):
                first_token.set()

    task = asyncio.create_task(consume())
    await asyncio.wait_for(first_token.wait(), timeout=5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert slow.closed
    assert not any(isinstance(e, (CompleteEvent, FailedEvent)) for e in seen)


# ------------------------------------------------------------------
# State machine
# ------------------------------------------------------------------


def test_run_rejects_illegal_transition():
    run = _Run(corpus_id="c", question="q")
    with pytest.raises(RuntimeError, match="Illegal transition"):
        run.advance(State.GENERATING)


def test_run_can_always_fail():
    run = _Run(corpus_id="c", question="q")
    run.advance(State.EMBEDDING_QUESTION)
    run.advance(State.FAILED)
    assert run.state is State.FAILED
