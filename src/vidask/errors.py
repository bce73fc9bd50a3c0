"""Error taxonomy for the retrieval pipeline.

Every error carries a stable ``kind`` string so that a failed request can be
reported to callers (CLI, SSE clients) without leaking exception classes.
Collaborator failures are always wrapped with ``raise ... from exc``.
"""

from __future__ import annotations


class VidaskError(Exception):
    """Base class for all errors raised by vidask."""

    kind: str = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmptyInputError(VidaskError):
    """Chunking produced zero chunks, or a required text input was blank."""

    kind = "empty_input"


class DimensionMismatchError(VidaskError):
    """Chunk / embedding counts differ, or a query does not match the collection dimension."""

    kind = "dimension_mismatch"


class InconsistentDimensionError(VidaskError):
    """Embeddings in one collection do not share a single dimension."""

    kind = "inconsistent_dimension"


class EmbeddingError(VidaskError):
    """The embedding model is unavailable or returned a malformed response."""

    kind = "embedding"


class GenerationError(VidaskError):
    """The generation model failed before or during streaming."""

    kind = "generation"


class NotReadyError(VidaskError):
    """A question was asked against a corpus that has not been processed yet.

    Distinct from "zero matches", which is a normal (empty) search result.
    """

    kind = "not_ready"
