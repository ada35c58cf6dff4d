"""Vector storage package for SculptEmbed - concrete storage implementations."""

from .duckdb_storage import DuckDBVectorStorage
from .memory_storage import InMemoryVectorStorage

__all__ = [
    "DuckDBVectorStorage",
    "InMemoryVectorStorage",
]
