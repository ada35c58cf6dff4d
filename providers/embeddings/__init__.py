"""Embedding providers package for SculptEmbed - concrete embedding implementations."""

from .custom_provider import CustomEmbeddingsProvider

__all__ = [
    "CustomEmbeddingsProvider",
]
