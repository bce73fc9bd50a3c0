"""vidask rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from vidask.cli.errors import err_no_api_key
    console.print(err_no_api_key("groq"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from vidask.rag.llm_client import PROVIDER_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'groq'. Set:  export GROQ_API_KEY=...
    """
    env_var = PROVIDER_ENV.get(provider.lower()) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_transcript_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] Transcript file not found: '{path}'\n"
        "  Pass an existing .txt or .json file:  vidask ask --transcript talk.txt --question ..."
    )


def err_transcript_invalid(path: str, reason: str) -> str:
    """Transcript file could not be parsed into segments."""
    return (
        f"[red]Error:[/] Could not read transcript '{path}': {reason}\n"
        "  JSON transcripts must be a list of objects like:\n"
        '    {"text": "Hello world.", "offset": 0, "duration": 1000}'
    )


def err_empty_transcript(path: str) -> str:
    return (
        f"[red]Error:[/] Transcript '{path}' contains no usable text.\n"
        "  Check the file content, or pass a different --transcript."
    )


def err_config(message: str) -> str:
    """Invalid or forbidden value in a config file."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix vidask.yaml (or ~/.vidask/config.yaml) and try again."
    )


def err_embedding_failed(message: str) -> str:
    return (
        f"[red]Error:[/] Embedding failed: {message}\n"
        "  Check the embedding model name (embedding.model) and your network connection."
    )


def err_request_failed(kind: str, message: str) -> str:
    """A question could not be answered; *kind* is the error kind from the failed event."""
    hints = {
        "not_ready": "Process the transcript first (vidask ask/chat do this automatically).",
        "embedding": "Check the embedding model name (embedding.model) and your network connection.",
        "generation": "Check the generation model name (generation.model), its API key and rate limits.",
        "empty_input": "Type a question.",
    }
    hint = hints.get(kind, "Re-run with --verbose for details.")
    return f"[red]Error ({kind}):[/] {message}\n  {hint}"
