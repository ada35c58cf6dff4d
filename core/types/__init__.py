"""SculptEmbed Core Types Package - Common type definitions and aliases.

This package contains type definitions, enums, and type aliases used throughout
the SculptEmbed system. These types provide better code clarity, IDE support,
and runtime type checking capabilities.

The types are organized into logical groups:
- Provider, model and namespace name types
- Chunk and vector identifiers
- Provider error codes
"""

from .common import (
    ChunkIndex,
    ContentHash,
    Dimensions,
    EmbeddingVector,
    FilePath,
    ModelName,
    Namespace,
    ProviderErrorCode,
    ProviderName,
    Timestamp,
    VectorId,
)

__all__ = [
    # Enums
    "ProviderErrorCode",

    # String types
    "ProviderName",
    "ModelName",
    "FilePath",
    "Namespace",
    "VectorId",
    "ContentHash",

    # Numeric types
    "ChunkIndex",
    "Dimensions",
    "Timestamp",

    # Complex types
    "EmbeddingVector",
]
