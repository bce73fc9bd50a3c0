"""Generation providers: grounded prompt → stream of text fragments."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from vidask.errors import GenerationError
from vidask.models import ChatTurn
from vidask.rag.llm_client import astream
from vidask.rag.prompts import ContextPassage, build_messages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """Everything a provider needs to produce one answer.

    Attributes:
        system_prompt: Instructions with the context passages already embedded.
        passages: The passages embedded in ``system_prompt`` (for providers
            that place context differently).
        history: Trimmed prior conversation turns, oldest first.
        question: The user's current message.
        conversational: True for greetings / small talk (no retrieval).
    """

    system_prompt: str
    question: str
    passages: list[ContextPassage] = field(default_factory=list)
    history: list[ChatTurn] = field(default_factory=list)
    conversational: bool = False


class GenerationProvider(ABC):
    """Capability interface for answer-generation backends."""

    @abstractmethod
    def generate(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Return an async iterator of text fragments, in generation order.

        Closing the iterator must release the underlying connection.

        Raises:
            GenerationError: On model or network failure (possibly mid-stream).
        """


class LiteLLMGenerationProvider(GenerationProvider):
    """Stream chat completions through ``litellm.acompletion``.

    Model selection and sampling belong to the provider: greetings use the
    (higher) conversational temperature.
    """

    def __init__(
        self,
        model: str = "groq/llama-3.3-70b-versatile",
        temperature: float = 0.5,
        conversational_temperature: float = 0.7,
        max_tokens: int = 1_000,
        num_retries: int = 0,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.conversational_temperature = conversational_temperature
        self.max_tokens = max_tokens
        self.num_retries = num_retries

    async def generate(self, request: GenerationRequest) -> AsyncIterator[str]:
        messages = build_messages(request.system_prompt, request.history, request.question)
        temperature = (
            self.conversational_temperature if request.conversational else self.temperature
        )
        logger.debug(
            "Generating with %s: %d passages, %d history turns",
            self.model,
            len(request.passages),
            len(request.history),
        )

        started = time.perf_counter()
        stream = astream(
            self.model,
            messages,
            max_tokens=self.max_tokens,
            temperature=temperature,
            num_retries=self.num_retries,
        )
        try:
            async for token in stream:
                yield token
        except Exception as exc:
            raise GenerationError(f"Failed to generate answer with '{self.model}': {exc}") from exc
        finally:
            await stream.aclose()

        logger.info("Answer generated in %.0fms (streaming)", (time.perf_counter() - started) * 1000)
