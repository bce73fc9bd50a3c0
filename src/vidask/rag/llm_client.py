"""LiteLLM client wrapper: API key validation, async embedding and streamed completion.

All model calls in the pipeline route through this module so that the
providers in ``vidask.rag.embeddings`` / ``vidask.rag.generation`` stay free
of vendor-specific branching. LiteLLM's built-in retry is used where enabled
(``num_retries``); nothing here retries on its own.
"""

from __future__ import annotations

import math
import os
from collections.abc import AsyncIterator

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "huggingface": None,  # Key optional, only raises the rate limit
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string (default 'openai')."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


async def aembed(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Call litellm.aembedding() and return one vector per input text, in order.

    Raises:
        ValueError: If the response does not hold exactly one vector per text.
    """
    response = await litellm.aembedding(
        model=model,
        input=texts,
        num_retries=num_retries,
    )
    data = list(response.data or [])
    if len(data) != len(texts):
        raise ValueError(f"Expected {len(texts)} embeddings, got {len(data)}")
    # Providers may return items out of order; each carries its input index.
    if all(_field(item, "index") is not None for item in data):
        data.sort(key=lambda item: _field(item, "index"))
    return [list(_field(item, "embedding") or []) for item in data]


async def astream(
    model: str,
    messages: list[dict],
    max_tokens: int = 1_000,
    temperature: float = 0.5,
    num_retries: int = 0,
) -> AsyncIterator[str]:
    """Stream a chat completion, yielding non-empty content deltas in order.

    The underlying HTTP stream is closed when the iterator is closed or
    abandoned (``aclose()`` / task cancellation).
    """
    response = await litellm.acompletion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        stream=True,
    )
    try:
        async for part in response:
            if not part.choices:
                continue
            content = part.choices[0].delta.content
            if content:
                yield content
    finally:
        aclose = getattr(response, "aclose", None)
        if aclose is not None:
            await aclose()


def estimate_tokens(text: str) -> int:
    """Rough token estimate: 1 token ≈ 4 characters (rounded up)."""
    return math.ceil(len(text) / 4)


def _field(item: object, name: str) -> object:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
