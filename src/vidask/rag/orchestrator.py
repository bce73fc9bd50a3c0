"""Retrieval orchestrator: one grounded answer per request, as an event stream.

State machine (per request):

  Idle → EmbeddingQuestion → Searching → AssemblingContext → Generating → Complete
                           ↘ (greeting) ↗
  any non-terminal state → Failed

Events are yielded strictly in stage order; generated tokens are forwarded
one by one in generation order. A failure yields exactly one FailedEvent and
ends the stream. The vector store is only read, never written.

Cancellation: closing the ``ask()`` generator or cancelling the task that
consumes it stops token forwarding and closes the generation stream.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

from vidask.config import RetrievalCfg
from vidask.errors import EmptyInputError, NotReadyError, VidaskError
from vidask.models import ChatTurn, Embedding, SimilarityMatch
from vidask.rag.embeddings import EmbeddingProvider
from vidask.rag.events import (
    AskEvent,
    CompleteEvent,
    FailedEvent,
    Performance,
    ProgressEvent,
    SourceRef,
    Stage,
    Status,
    TokenEvent,
)
from vidask.rag.generation import GenerationProvider, GenerationRequest
from vidask.rag.keywords import important_terms
from vidask.rag.llm_client import estimate_tokens
from vidask.rag.prompts import ContextPassage, build_system_prompt, trim_history
from vidask.store.vectors import VectorStore

logger = logging.getLogger(__name__)

_EMBEDDING_PREVIEW_DIMS = 10
# records × dimensions above which a search is moved off the event loop
_OFFLOAD_THRESHOLD = 250_000


class State(str, Enum):
    IDLE = "idle"
    EMBEDDING_QUESTION = "embedding_question"
    SEARCHING = "searching"
    ASSEMBLING_CONTEXT = "assembling_context"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


_TRANSITIONS: dict[State, frozenset[State]] = {
    State.IDLE: frozenset({State.EMBEDDING_QUESTION}),
    State.EMBEDDING_QUESTION: frozenset({State.SEARCHING, State.ASSEMBLING_CONTEXT}),
    State.SEARCHING: frozenset({State.ASSEMBLING_CONTEXT}),
    State.ASSEMBLING_CONTEXT: frozenset({State.GENERATING}),
    State.GENERATING: frozenset({State.COMPLETE}),
    State.COMPLETE: frozenset(),
    State.FAILED: frozenset(),
}

# Stage reported in a FailedEvent for a failure raised while in a given state.
_STATE_STAGE: dict[State, Stage | None] = {
    State.IDLE: None,
    State.EMBEDDING_QUESTION: Stage.EMBEDDING,
    State.SEARCHING: Stage.SEARCH,
    State.ASSEMBLING_CONTEXT: Stage.GENERATE,
    State.GENERATING: Stage.GENERATE,
}


@dataclass
class _Run:
    """Mutable per-request state; never shared between requests."""

    corpus_id: str
    question: str
    started: float = field(default_factory=time.perf_counter)
    state: State = State.IDLE
    answer_parts: list[str] = field(default_factory=list)
    output_tokens: int = 0

    def advance(self, target: State) -> None:
        if target is not State.FAILED and target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} → {target.value}")
        logger.debug("[%s] %s → %s", self.corpus_id, self.state.value, target.value)
        self.state = target


class RetrievalOrchestrator:
    """Sequence embed → search → assemble → generate for each question.

    Args:
        store: Vector store holding processed corpora (read only).
        embedder: Provider used to embed the question.
        generator: Provider that streams the answer.
        config: Retrieval parameters (top-K, similarity threshold, history
            length, greeting phrases, source preview length).
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingProvider,
        generator: GenerationProvider,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._generator = generator
        self._config = config or RetrievalCfg()
        self._greeting_re = _compile_greetings(self._config.greeting_patterns)

    def is_greeting(self, question: str) -> bool:
        """True when *question* starts with one of the configured greeting phrases."""
        return self._greeting_re is not None and bool(self._greeting_re.match(question.strip()))

    async def ask(
        self,
        corpus_id: str,
        question: str,
        history: Sequence[ChatTurn] | None = None,
        persona_name: str | None = None,
    ) -> AsyncIterator[AskEvent]:
        """Answer *question* against *corpus_id*, yielding progress events.

        The stream always ends with exactly one CompleteEvent or FailedEvent.
        """
        run = _Run(corpus_id=corpus_id, question=question.strip())
        stream: AsyncIterator[str] | None = None
        try:
            if not run.question:
                raise EmptyInputError("Question must not be empty")

            # ---- Embedding ----
            run.advance(State.EMBEDDING_QUESTION)
            yield ProgressEvent(
                Stage.EMBEDDING, Status.PROCESSING, "Converting your question to an embedding..."
            )
            query = await self._embedder.embed(run.question)
            yield ProgressEvent(
                Stage.EMBEDDING,
                Status.COMPLETE,
                f"Question embedded ({len(query)} dimensions)",
                {"dimension": len(query), "embedding_preview": query[:_EMBEDDING_PREVIEW_DIMS]},
            )

            # ---- Search (skipped for greetings) ----
            greeting = self.is_greeting(run.question)
            matches: list[SimilarityMatch] = []
            relevant: list[SimilarityMatch] = []
            if greeting:
                run.advance(State.ASSEMBLING_CONTEXT)
                yield ProgressEvent(
                    Stage.SEARCH,
                    Status.SKIPPED,
                    "Greeting detected - responding conversationally",
                    {"match_count": 0},
                )
            else:
                run.advance(State.SEARCHING)
                yield ProgressEvent(Stage.SEARCH, Status.PROCESSING, "Calculating cosine similarity...")
                if not self._store.has_corpus(corpus_id):
                    raise NotReadyError(
                        f"Corpus '{corpus_id}' has not been processed yet; process it before asking."
                    )
                matches = await self._search(corpus_id, query)
                threshold = self._config.similarity_threshold
                relevant = [m for m in matches if m.score >= threshold]
                _log_matches(relevant)
                run.advance(State.ASSEMBLING_CONTEXT)
                yield ProgressEvent(
                    Stage.SEARCH,
                    Status.COMPLETE,
                    f"Found {len(relevant)} relevant segments"
                    if relevant
                    else "No specific matches found - responding conversationally",
                    {
                        "match_count": len(matches),
                        "relevant_count": len(relevant),
                        "similarities": [round(m.score, 3) for m in matches],
                    },
                )

            # ---- Assemble ----
            passages = [
                ContextPassage(
                    number=i + 1,
                    text=m.record.chunk.text,
                    timestamp_s=m.record.chunk.start_timestamp_s,
                )
                for i, m in enumerate(relevant)
            ]
            request = GenerationRequest(
                system_prompt=build_system_prompt(passages, persona_name),
                question=run.question,
                passages=passages,
                history=trim_history(list(history or []), self._config.history_turns),
                conversational=greeting,
            )

            # ---- Generate ----
            run.advance(State.GENERATING)
            yield ProgressEvent(
                Stage.GENERATE,
                Status.PROCESSING,
                "Generating response..." if greeting else "Generating a grounded answer...",
            )
            stream = self._generator.generate(request)
            async for token in stream:
                if not token:
                    continue
                run.answer_parts.append(token)
                run.output_tokens += estimate_tokens(token)
                yield TokenEvent(token)

            run.advance(State.COMPLETE)
            yield self._complete(run, matches, relevant)

        except VidaskError as exc:
            stage = _STATE_STAGE.get(run.state)
            run.advance(State.FAILED)
            logger.error("[%s] Request failed (%s): %s", corpus_id, exc.kind, exc.message)
            yield FailedEvent(kind=exc.kind, message=exc.message, stage=stage)
        except Exception as exc:
            stage = _STATE_STAGE.get(run.state)
            run.advance(State.FAILED)
            logger.exception("[%s] Unexpected error while answering", corpus_id)
            yield FailedEvent(kind="internal", message=str(exc) or type(exc).__name__, stage=stage)
        finally:
            if stream is not None:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _search(self, corpus_id: str, query: Embedding) -> list[SimilarityMatch]:
        top_k = self._config.top_k
        size = len(self._store.records(corpus_id)) * len(query)
        if size >= _OFFLOAD_THRESHOLD:
            return await asyncio.to_thread(self._store.search, corpus_id, query, top_k)
        return self._store.search(corpus_id, query, top_k)

    def _complete(
        self,
        run: _Run,
        matches: list[SimilarityMatch],
        relevant: list[SimilarityMatch],
    ) -> CompleteEvent:
        answer = "".join(run.answer_parts)
        duration = time.perf_counter() - run.started

        context = " ".join(m.record.chunk.text for m in relevant)
        input_text = run.question + (f"\n\n{context}" if context else "")
        input_tokens = estimate_tokens(input_text)
        tokens_per_second = run.output_tokens / duration if duration > 0 else 0.0

        preview = self._config.source_preview_chars
        sources = [
            SourceRef(
                segment=i + 1,
                index=m.record.chunk.index,
                text=_truncate(m.record.chunk.text, preview),
                similarity=round(m.score, 3),
                timestamp_s=m.record.chunk.start_timestamp_s,
                end_timestamp_s=m.record.chunk.end_timestamp_s,
            )
            for i, m in enumerate(relevant)
        ]

        logger.info(
            "[%s] Answer complete in %.2fs (%d sources, ~%d output tokens)",
            run.corpus_id,
            duration,
            len(sources),
            run.output_tokens,
        )
        return CompleteEvent(
            answer=answer,
            question=run.question,
            sources=sources,
            performance=Performance(
                duration_s=round(duration, 3),
                input_tokens=input_tokens,
                output_tokens=run.output_tokens,
                tokens_per_second=round(tokens_per_second, 1),
            ),
            keywords=important_terms(run.question),
            match_count=len(matches),
        )


def _compile_greetings(patterns: Sequence[str]) -> re.Pattern[str] | None:
    phrases = [p.strip() for p in patterns if p.strip()]
    if not phrases:
        return None
    alternation = "|".join(re.escape(p) for p in sorted(phrases, key=len, reverse=True))
    # Word boundary so that "hi" does not match "history".
    return re.compile(rf"^(?:{alternation})(?!\w)", re.IGNORECASE)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _log_matches(matches: list[SimilarityMatch]) -> None:
    for i, m in enumerate(matches):
        logger.debug('  %d. Score: %.3f | "%s..."', i + 1, m.score, m.record.chunk.text[:60])
