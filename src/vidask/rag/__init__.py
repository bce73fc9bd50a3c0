"""vidask RAG pipeline — providers, prompt assembly, orchestration."""

from vidask.rag.embeddings import EmbeddingProvider, LiteLLMEmbeddingProvider
from vidask.rag.events import (
    AskEvent,
    CompleteEvent,
    FailedEvent,
    ProgressEvent,
    Stage,
    Status,
    TokenEvent,
)
from vidask.rag.generation import GenerationProvider, GenerationRequest, LiteLLMGenerationProvider
from vidask.rag.orchestrator import RetrievalOrchestrator, State
from vidask.rag.processor import CorpusProcessor, ProcessResult

__all__ = [
    "AskEvent",
    "CompleteEvent",
    "CorpusProcessor",
    "EmbeddingProvider",
    "FailedEvent",
    "GenerationProvider",
    "GenerationRequest",
    "LiteLLMEmbeddingProvider",
    "LiteLLMGenerationProvider",
    "ProcessResult",
    "ProgressEvent",
    "RetrievalOrchestrator",
    "Stage",
    "State",
    "Status",
    "TokenEvent",
]
