"""Interfaces package for SculptEmbed - abstract protocols for collaborator implementations."""

from .content_preprocessor import ContentPreprocessor
from .embedding_provider import EmbeddingsProvider
from .vault import Vault
from .vector_storage import VectorStorage

__all__ = [
    "ContentPreprocessor",
    "EmbeddingsProvider",
    "Vault",
    "VectorStorage",
]
