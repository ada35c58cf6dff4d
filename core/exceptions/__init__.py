"""SculptEmbed Core Exceptions Package - Core exception classes for error handling.

This package contains the exception hierarchy for the SculptEmbed system. These
exceptions provide clear error categorization and enable proper error handling
throughout the application.

The exception hierarchy is designed to:
- Provide specific exception types for different error categories
- Carry structured provider failure fields (code, status, transient, retry hint)
- Support structured error messages and context
"""

from .core import (
    ConfigurationError,
    EmbeddingCountMismatchError,
    EmbeddingError,
    EmbeddingsProviderError,
    PreprocessingError,
    SculptEmbedError,
    StorageError,
    ValidationError,
)

__all__ = [
    # Base exception
    "SculptEmbedError",

    # Domain-specific exceptions
    "ValidationError",
    "EmbeddingError",
    "PreprocessingError",
    "StorageError",
    "ConfigurationError",

    # Provider boundary
    "EmbeddingsProviderError",
    "EmbeddingCountMismatchError",
]
