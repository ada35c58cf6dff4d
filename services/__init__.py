"""Service layer for SculptEmbed - embeddings orchestration and dependency injection."""

from .base_service import BaseService
from .embeddings_processor import EmbeddingsProcessor, build_excerpt, normalize_vector

__all__ = [
    'BaseService',
    'EmbeddingsProcessor',
    'build_excerpt',
    'normalize_vector',
]
