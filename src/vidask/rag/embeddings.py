"""Embedding providers: text → unit-normalised vector.

The vector store assumes normalised inputs, so every provider returns vectors
with L2 norm 1 regardless of the model's native output. A zero vector is
passed through unchanged (it scores 0 against everything).
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from vidask.errors import EmbeddingError
from vidask.models import Embedding
from vidask.rag.llm_client import aembed
from vidask.store.vectors import normalize

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EmbeddingProvider(ABC):
    """Capability interface for embedding backends."""

    @abstractmethod
    async def embed(self, text: str) -> Embedding:
        """Embed *text* and return a unit-normalised vector.

        Raises:
            EmbeddingError: On model, network or response-format failure.
        """

    async def embed_batch(
        self,
        texts: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> list[Embedding]:
        """Embed *texts* in order, calling ``on_progress(done, total)`` after each item.

        Sequential on purpose: progress is reported per completed item.
        """
        total = len(texts)
        started = time.perf_counter()
        vectors: list[Embedding] = []
        for i, text in enumerate(texts):
            vectors.append(await self.embed(text))
            if on_progress is not None:
                on_progress(i + 1, total)

        if total:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "Generated %d embeddings in %.0fms (avg: %.0fms each)",
                total,
                elapsed_ms,
                elapsed_ms / total,
            )
        return vectors


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embed through ``litellm.aembedding`` and normalise the result.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; a response of any other length is
            rejected as malformed. ``None`` accepts any length.
        num_retries: Transient-error retries performed by LiteLLM.
    """

    def __init__(
        self,
        model: str = "huggingface/sentence-transformers/all-MiniLM-L6-v2",
        dimensions: int | None = None,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.num_retries = num_retries

    async def embed(self, text: str) -> Embedding:
        started = time.perf_counter()
        try:
            vectors = await aembed(self.model, [text], num_retries=self.num_retries)
        except Exception as exc:
            raise EmbeddingError(f"Failed to generate embedding with '{self.model}': {exc}") from exc

        vector = vectors[0]
        self._check_vector(vector)

        unit = normalize(vector)
        if not any(unit):
            logger.warning("Embedding model returned a zero vector for %d chars of text", len(text))

        logger.debug(
            "Embedded %d chars in %.0fms (%d dimensions)",
            len(text),
            (time.perf_counter() - started) * 1000,
            len(unit),
        )
        return unit

    def _check_vector(self, vector: list[float]) -> None:
        if not vector:
            raise EmbeddingError(f"Embedding model '{self.model}' returned an empty vector")
        if not all(isinstance(v, (int, float)) for v in vector):
            raise EmbeddingError(f"Embedding model '{self.model}' returned non-numeric values")
        if not all(math.isfinite(v) for v in vector):
            raise EmbeddingError(f"Embedding model '{self.model}' returned NaN or infinite values")
        if self.dimensions is not None and len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding model '{self.model}' returned {len(vector)} dimensions, "
                f"expected {self.dimensions}"
            )
