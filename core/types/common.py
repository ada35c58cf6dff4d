"""SculptEmbed Core Types - Common type definitions and aliases.

This module contains type definitions, enums, and type aliases used throughout
the SculptEmbed system. These types provide better code clarity, IDE support,
and runtime type checking capabilities.
"""

from enum import Enum
from typing import List, NewType


# String-based type aliases for better semantic clarity
ProviderName = NewType("ProviderName", str)  # e.g., "custom", "systemsculpt"
ModelName = NewType("ModelName", str)        # e.g., "text-embedding-3-small"
FilePath = NewType("FilePath", str)          # Vault-relative path, e.g. "Notes/Idea.md"
Namespace = NewType("Namespace", str)        # e.g., "custom:nomic-embed-text:v2:768"
VectorId = NewType("VectorId", str)          # e.g., "{namespace}::{path}#{chunk_index}"
ContentHash = NewType("ContentHash", str)    # Stable hash of chunk text

# Numeric type aliases
ChunkIndex = NewType("ChunkIndex", int)      # 0-based chunk position within a file
Dimensions = NewType("Dimensions", int)      # Embedding vector dimensions
Timestamp = NewType("Timestamp", float)      # Unix timestamp (milliseconds)

# Complex types
EmbeddingVector = List[float]                # Vector embedding representation


class ProviderErrorCode(str, Enum):
    """Machine-readable error codes raised at the provider boundary."""

    HOST_UNAVAILABLE = "HOST_UNAVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    LICENSE_INVALID = "LICENSE_INVALID"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNEXPECTED_RESPONSE = "UNEXPECTED_RESPONSE"
    COUNT_MISMATCH = "COUNT_MISMATCH"
    INVALID_VECTOR = "INVALID_VECTOR"

    @classmethod
    def from_string(cls, value: str) -> "ProviderErrorCode":
        """Convert string to ProviderErrorCode, defaulting to UNEXPECTED_RESPONSE."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNEXPECTED_RESPONSE

    @property
    def is_backoff_signal(self) -> bool:
        """Return True if this code means the provider wants callers to back off."""
        return self in {self.HOST_UNAVAILABLE, self.RATE_LIMITED}
