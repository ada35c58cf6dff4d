"""Providers package for SculptEmbed - concrete implementations of abstract interfaces."""

from .embeddings import CustomEmbeddingsProvider
from .storage import DuckDBVectorStorage, InMemoryVectorStorage

__all__ = [
    # Embedding providers
    "CustomEmbeddingsProvider",

    # Vector storage
    "DuckDBVectorStorage",
    "InMemoryVectorStorage",
]
