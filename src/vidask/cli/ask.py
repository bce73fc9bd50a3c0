"""vidask ask / vidask chat — answer questions about a transcript.

Usage:
  vidask ask --transcript talk.txt --question "What is the main argument?"
  vidask chat --transcript captions.json --persona "Ada"

Flags:
  --transcript PATH        .txt (plain text) or .json (timed segments); required
  --question TEXT          Question to answer (ask only)
  --persona NAME           Answer in the voice of a named persona
  --corpus-id ID           Corpus identifier (default: transcript file stem)
  --generation-model M     Override generation.model
  --embedding-model M      Override embedding.model
  --sse                    Print raw server-sent-event frames instead of rich output (ask only)

The vector store lives in memory: each invocation processes the transcript
once and then answers from it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from vidask.cli.errors import (
    err_config,
    err_embedding_failed,
    err_empty_transcript,
    err_no_api_key,
    err_request_failed,
    err_transcript_invalid,
    err_transcript_not_found,
)
from vidask.config import ConfigError, VidaskConfig, load_config
from vidask.errors import EmbeddingError, EmptyInputError
from vidask.ingest.sources import load_segments
from vidask.ingest.transcript import TranscriptChunker
from vidask.models import ChatTurn, TimedSegment
from vidask.rag.embeddings import LiteLLMEmbeddingProvider
from vidask.rag.events import (
    CompleteEvent,
    FailedEvent,
    ProgressEvent,
    Stage,
    Status,
    TokenEvent,
)
from vidask.rag.generation import LiteLLMGenerationProvider
from vidask.rag.llm_client import provider_of, validate_api_key
from vidask.rag.orchestrator import RetrievalOrchestrator
from vidask.rag.processor import CorpusProcessor
from vidask.rag.prompts import format_timestamp
from vidask.store.vectors import VectorStore

console = Console()

_EXIT_WORDS = frozenset({"exit", "quit", ":q"})


@dataclass
class Runtime:
    store: VectorStore
    processor: CorpusProcessor
    orchestrator: RetrievalOrchestrator


def build_runtime(cfg: VidaskConfig) -> Runtime:
    """Wire store, providers, processor and orchestrator from *cfg*."""
    store = VectorStore()
    embedder = LiteLLMEmbeddingProvider(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        num_retries=cfg.embedding.num_retries,
    )
    generator = LiteLLMGenerationProvider(
        model=cfg.generation.model,
        temperature=cfg.generation.temperature,
        conversational_temperature=cfg.generation.conversational_temperature,
        max_tokens=cfg.generation.max_tokens,
        num_retries=cfg.generation.num_retries,
    )
    chunker = TranscriptChunker(
        target_words=cfg.chunking.target_words,
        overlap_segments=cfg.chunking.overlap_segments,
        segments_per_window=cfg.chunking.segments_per_window,
        min_chunk_chars=cfg.chunking.min_chunk_chars,
    )
    return Runtime(
        store=store,
        processor=CorpusProcessor(store, embedder, chunker),
        orchestrator=RetrievalOrchestrator(store, embedder, generator, cfg.retrieval),
    )


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


def ask_cmd(
    transcript: Annotated[
        Path,
        typer.Option("--transcript", "-t", help="Transcript file (.txt or .json segments)."),
    ],
    question: Annotated[
        str,
        typer.Option("--question", "-q", help="Question to answer."),
    ],
    persona: Annotated[
        str | None,
        typer.Option("--persona", "-p", help="Answer as this named persona."),
    ] = None,
    corpus_id: Annotated[
        str | None,
        typer.Option("--corpus-id", help="Corpus identifier (default: transcript file stem)."),
    ] = None,
    generation_model: Annotated[
        str | None,
        typer.Option("--generation-model", help="Override generation.model."),
    ] = None,
    embedding_model: Annotated[
        str | None,
        typer.Option("--embedding-model", help="Override embedding.model."),
    ] = None,
    sse: Annotated[
        bool,
        typer.Option("--sse", help="Print raw server-sent-event frames."),
    ] = False,
) -> None:
    """Process a transcript and answer one question about it."""
    cfg = _load_cfg(generation_model, embedding_model)
    segments = _load_transcript(transcript)
    runtime = build_runtime(cfg)
    corpus = corpus_id or transcript.stem

    _process(runtime, corpus, segments, quiet=sse)
    outcome = asyncio.run(_ask(runtime, corpus, question, [], persona, sse=sse))
    if not isinstance(outcome, CompleteEvent):
        raise typer.Exit(1)


def chat_cmd(
    transcript: Annotated[
        Path,
        typer.Option("--transcript", "-t", help="Transcript file (.txt or .json segments)."),
    ],
    persona: Annotated[
        str | None,
        typer.Option("--persona", "-p", help="Answer as this named persona."),
    ] = None,
    corpus_id: Annotated[
        str | None,
        typer.Option("--corpus-id", help="Corpus identifier (default: transcript file stem)."),
    ] = None,
    generation_model: Annotated[
        str | None,
        typer.Option("--generation-model", help="Override generation.model."),
    ] = None,
    embedding_model: Annotated[
        str | None,
        typer.Option("--embedding-model", help="Override embedding.model."),
    ] = None,
) -> None:
    """Process a transcript, then chat with it interactively (type 'exit' to quit)."""
    cfg = _load_cfg(generation_model, embedding_model)
    segments = _load_transcript(transcript)
    runtime = build_runtime(cfg)
    corpus = corpus_id or transcript.stem

    _process(runtime, corpus, segments, quiet=False)
    console.print("[dim]Type 'exit' to quit. Ctrl+C stops the current answer.[/]")

    history: list[ChatTurn] = []
    while True:
        try:
            question = typer.prompt("\nYou", prompt_suffix=" › ")
        except (typer.Abort, EOFError):
            break
        if question.strip().lower() in _EXIT_WORDS:
            break

        try:
            outcome = asyncio.run(_ask(runtime, corpus, question, history, persona, sse=False))
        except KeyboardInterrupt:
            console.print("\n  [dim]Interrupted — answer discarded.[/]")
            continue

        if isinstance(outcome, CompleteEvent):
            history.append(ChatTurn(role="user", content=outcome.question))
            history.append(ChatTurn(role="assistant", content=outcome.answer))


# ------------------------------------------------------------------
# Setup helpers
# ------------------------------------------------------------------


def _load_cfg(generation_model: str | None, embedding_model: str | None) -> VidaskConfig:
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(exc.message))
        raise typer.Exit(1)

    if generation_model:
        cfg.generation.model = generation_model
    if embedding_model:
        cfg.embedding.model = embedding_model

    for model in (cfg.embedding.model, cfg.generation.model):
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model)))
            raise typer.Exit(1)
    return cfg


def _load_transcript(path: Path) -> list[TimedSegment]:
    try:
        return load_segments(path)
    except FileNotFoundError:
        console.print(err_transcript_not_found(str(path)))
        raise typer.Exit(1)
    except EmptyInputError:
        console.print(err_empty_transcript(str(path)))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(err_transcript_invalid(str(path), str(exc)))
        raise typer.Exit(1)


def _process(runtime: Runtime, corpus_id: str, segments: list[TimedSegment], quiet: bool) -> None:
    """Chunk + embed + store the transcript, with a progress bar unless *quiet*."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
        disable=quiet,
    ) as prog:
        task = prog.add_task("Chunking…", total=None)

        def _on_event(event: ProgressEvent) -> None:
            if event.stage is Stage.CHUNKING and event.status is Status.COMPLETE:
                prog.update(task, description="Embedding…", total=event.data["chunk_count"], completed=0)
            elif event.stage is Stage.EMBEDDING and event.status is Status.PROGRESS:
                prog.update(task, completed=event.data["embedding_count"])
            elif event.stage is Stage.STORING and event.status is Status.PROCESSING:
                prog.update(task, description="Storing…")

        try:
            result = asyncio.run(
                runtime.processor.process_corpus(corpus_id, segments, on_event=_on_event)
            )
        except EmptyInputError:
            console.print(err_empty_transcript(corpus_id))
            raise typer.Exit(1)
        except EmbeddingError as exc:
            console.print(err_embedding_failed(exc.message))
            raise typer.Exit(1)

    if not quiet:
        console.print(
            f"  [green]✓[/] {len(segments)} segments → {result.chunk_count} chunks embedded"
        )


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


async def _ask(
    runtime: Runtime,
    corpus_id: str,
    question: str,
    history: list[ChatTurn],
    persona: str | None,
    sse: bool,
) -> CompleteEvent | FailedEvent | None:
    """Stream one answer to the console. Returns the terminal event."""
    outcome: CompleteEvent | FailedEvent | None = None
    streaming = False
    async for event in runtime.orchestrator.ask(corpus_id, question, history, persona):
        if sse:
            typer.echo(event.to_sse(), nl=False)
            if isinstance(event, (CompleteEvent, FailedEvent)):
                outcome = event
            continue

        if isinstance(event, TokenEvent):
            if not streaming:
                console.print()
                streaming = True
            console.print(event.chunk, end="", markup=False, highlight=False, soft_wrap=True)
        elif isinstance(event, ProgressEvent):
            if event.status in (Status.COMPLETE, Status.SKIPPED):
                console.print(f"  [dim]{event.message}[/]")
        elif isinstance(event, CompleteEvent):
            console.print()
            _print_sources(event)
            outcome = event
        elif isinstance(event, FailedEvent):
            if streaming:
                console.print()
            console.print(err_request_failed(event.kind, event.message))
            outcome = event
    return outcome


def _print_sources(event: CompleteEvent) -> None:
    if event.sources:
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("#", justify="right")
        table.add_column("Time")
        table.add_column("Score", justify="right")
        table.add_column("Passage")
        for src in event.sources:
            table.add_row(
                str(src.segment),
                _fmt_time(src.timestamp_s),
                f"{src.similarity:.3f}",
                src.text,
            )
        console.print()
        console.print(table)

    perf = event.performance
    if perf is not None:
        console.print(
            f"\n  [dim]{perf.duration_s:.2f}s · ~{perf.total_tokens} tokens "
            f"· {perf.tokens_per_second:.0f} tok/s[/]"
        )


def _fmt_time(seconds: float | None) -> str:
    if seconds is None:
        return "—"
    return format_timestamp(seconds)
