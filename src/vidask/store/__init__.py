"""vidask vector store layer."""

from vidask.store.vectors import StoreStats, VectorStore, cosine_similarity, normalize

__all__ = [
    "StoreStats",
    "VectorStore",
    "cosine_similarity",
    "normalize",
]
