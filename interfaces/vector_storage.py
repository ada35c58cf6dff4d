"""VectorStorage protocol for SculptEmbed - abstract interface for vector persistence."""

from typing import Iterable, Protocol

from core.models import VectorRecord


class VectorStorage(Protocol):
    """Abstract protocol for vector storage backends.

    Vectors are keyed by deterministic ids built from
    ``(namespace, path, chunk_index)``; storing an existing id replaces it.
    """

    async def store_vectors(self, vectors: list[VectorRecord]) -> None:
        """Upsert vectors by id."""
        ...

    async def remove_by_path_except_ids(self, path: str, namespace: str, keep_ids: Iterable[str]) -> int:
        """Delete vectors of ``path`` in ``namespace`` whose id is not in ``keep_ids``.

        Returns:
            Number of vectors removed
        """
        ...

    async def remove_by_path_except_hashes(self, path: str, namespace: str, keep_hashes: Iterable[str]) -> int:
        """Delete vectors of ``path`` in ``namespace`` whose content hash is not in ``keep_hashes``."""
        ...

    async def get_vectors_by_path(self, path: str) -> list[VectorRecord]:
        """All vectors stored for ``path`` across namespaces."""
        ...

    def get_vector_sync(self, vector_id: str) -> VectorRecord | None:
        """Synchronous lookup of a single vector by id."""
        ...

    async def remove_ids(self, ids: Iterable[str]) -> int:
        """Delete the given ids; unknown ids are ignored."""
        ...

    async def remove_by_path(self, path: str) -> int:
        """Delete every vector stored for ``path``."""
        ...

    async def remove_by_namespace_prefix(self, prefix: str) -> int:
        """Delete every vector whose namespace starts with ``prefix``."""
        ...

    async def get_vectors_by_namespace(self, namespace: str) -> list[VectorRecord]:
        """All vectors stored under ``namespace``."""
        ...

    async def get_distinct_paths(self) -> list[str]:
        """Every path with at least one stored vector, sorted."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...
