"""SculptEmbed Core Models Package - Domain model definitions.

This package contains the core domain models that represent the fundamental
entities in the SculptEmbed system. These models are designed to be independent
of infrastructure concerns and provide a clean, typed interface for working
with chunks, stored vectors, processing results and provider failures.

The models follow these principles:
- Immutable data structures using dataclasses with frozen=True
- Rich type hints for better IDE support and runtime validation
- Clear separation between domain logic and persistence concerns
"""

from .chunk import Chunk, ProcessedContent
from .failure import (
    ContentBlockedFailure,
    CooldownFailure,
    FatalFailure,
    ProviderFailure,
    UnknownFailure,
    classify_failure,
    is_html_forbidden,
)
from .result import FailedProcessingDetail, ProcessingProgress, ProcessingResult
from .vector import VectorMetadata, VectorRecord

__all__ = [
    "Chunk",
    "ProcessedContent",
    "VectorMetadata",
    "VectorRecord",
    "ProcessingProgress",
    "ProcessingResult",
    "FailedProcessingDetail",
    "ProviderFailure",
    "FatalFailure",
    "CooldownFailure",
    "ContentBlockedFailure",
    "UnknownFailure",
    "classify_failure",
    "is_html_forbidden",
]
