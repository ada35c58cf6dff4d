"""Base service class for SculptEmbed services."""

from abc import ABC

from interfaces.vector_storage import VectorStorage


class BaseService(ABC):
    """Base service class providing common functionality and dependency management."""

    def __init__(self, storage: VectorStorage):
        """Initialize service with vector storage dependency.

        Args:
            storage: Vector storage implementation
        """
        self._storage = storage

    @property
    def storage(self) -> VectorStorage:
        """Get vector storage instance."""
        return self._storage
