"""SculptEmbed Core Package - Domain models, types, and exceptions.

This package contains the core domain models and types that form the foundation
of the SculptEmbed architecture. These models are independent of infrastructure
concerns and provide a clean separation between business logic and implementation details.

Modules:
    models: Domain models for Chunk, VectorRecord, results and provider failures
    types: Common type definitions and aliases
    exceptions: Core exception classes for error handling
"""

from .exceptions import (
    ConfigurationError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    EmbeddingsProviderError,
    PreprocessingError,
    SculptEmbedError,
    StorageError,
    ValidationError,
)
from .models import (
    Chunk,
    ProcessedContent,
    ProcessingResult,
    VectorMetadata,
    VectorRecord,
)
from .types import ChunkIndex, ModelName, Namespace, ProviderErrorCode, ProviderName

__all__ = [
    # Domain Models
    "Chunk",
    "ProcessedContent",
    "VectorMetadata",
    "VectorRecord",
    "ProcessingResult",

    # Types
    "ChunkIndex",
    "Namespace",
    "ProviderName",
    "ModelName",
    "ProviderErrorCode",

    # Exceptions
    "SculptEmbedError",
    "ValidationError",
    "EmbeddingError",
    "PreprocessingError",
    "StorageError",
    "ConfigurationError",
    "EmbeddingsProviderError",
    "EmbeddingCountMismatchError",
]

__version__ = "0.1.0"
