"""In-memory vector storage for SculptEmbed - dictionary-backed VectorStorage implementation."""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from loguru import logger

from core.models import VectorRecord
from sculptembed.namespace import build_vector_id, build_vector_id_prefix


class InMemoryVectorStorage:
    """Keeps vectors in a dict keyed by vector id.

    Used directly in tests and as the read cache of the DuckDB backend.
    """

    def __init__(self, vectors: Optional[Iterable[VectorRecord]] = None):
        self._vectors: Dict[str, VectorRecord] = {}
        for vector in vectors or []:
            self._vectors[vector.id] = vector

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, vector_id: object) -> bool:
        return vector_id in self._vectors

    def all_vectors(self) -> List[VectorRecord]:
        return list(self._vectors.values())

    async def store_vectors(self, vectors: List[VectorRecord]) -> None:
        for vector in vectors:
            self._vectors[vector.id] = vector

    def _ids_for_path(self, path: str, namespace: str) -> List[str]:
        prefix = build_vector_id_prefix(namespace, path)
        return [vector_id for vector_id, vector in self._vectors.items()
                if vector.path == path and vector_id.startswith(prefix)]

    def ids_to_remove_except_ids(self, path: str, namespace: str, keep_ids: Iterable[str]) -> List[str]:
        keep = set(keep_ids)
        return [vector_id for vector_id in self._ids_for_path(path, namespace) if vector_id not in keep]

    def ids_to_remove_except_hashes(self, path: str, namespace: str, keep_hashes: Iterable[str]) -> List[str]:
        keep = set(keep_hashes)
        return [vector_id for vector_id in self._ids_for_path(path, namespace)
                if self._vectors[vector_id].metadata.content_hash not in keep]

    async def remove_by_path_except_ids(self, path: str, namespace: str, keep_ids: Iterable[str]) -> int:
        """Delete vectors of ``path`` under ``namespace`` that are not in ``keep_ids``."""
        stale = self.ids_to_remove_except_ids(path, namespace, keep_ids)
        for vector_id in stale:
            del self._vectors[vector_id]
        if stale:
            logger.debug(f"Removed {len(stale)} stale vectors for {path} in {namespace}")
        return len(stale)

    async def remove_by_path_except_hashes(self, path: str, namespace: str, keep_hashes: Iterable[str]) -> int:
        stale = self.ids_to_remove_except_hashes(path, namespace, keep_hashes)
        for vector_id in stale:
            del self._vectors[vector_id]
        return len(stale)

    async def get_vectors_by_path(self, path: str) -> List[VectorRecord]:
        return sorted((v for v in self._vectors.values() if v.path == path), key=lambda v: (v.namespace, v.chunk_id))

    def get_vector_sync(self, vector_id: str) -> Optional[VectorRecord]:
        return self._vectors.get(vector_id)

    async def remove_ids(self, ids: Iterable[str]) -> int:
        removed = 0
        for vector_id in ids:
            if self._vectors.pop(vector_id, None) is not None:
                removed += 1
        return removed

    async def remove_by_path(self, path: str) -> int:
        ids = [vector_id for vector_id, vector in self._vectors.items() if vector.path == path]
        return await self.remove_ids(ids)

    async def remove_by_namespace_prefix(self, prefix: str) -> int:
        ids = [vector_id for vector_id, vector in self._vectors.items() if vector.namespace.startswith(prefix)]
        return await self.remove_ids(ids)

    async def get_vectors_by_namespace(self, namespace: str) -> List[VectorRecord]:
        return [vector for vector in self._vectors.values() if vector.namespace == namespace]

    async def get_distinct_paths(self) -> List[str]:
        return sorted({vector.path for vector in self._vectors.values()})

    def renamed_vectors(self, old_path: str, new_path: str, new_title: Optional[str] = None) -> List[VectorRecord]:
        """Copies of ``old_path``'s vectors re-keyed under ``new_path``."""
        renamed = []
        for vector in self._vectors.values():
            if vector.path != old_path:
                continue
            updated = replace(vector, id=build_vector_id(vector.namespace, new_path, vector.chunk_id), path=new_path)
            if new_title:
                updated = updated.with_metadata(title=new_title)
            renamed.append(updated)
        return renamed

    async def rename_by_path(self, old_path: str, new_path: str, new_title: Optional[str] = None) -> int:
        """Move every vector of ``old_path`` to ``new_path`` without re-embedding."""
        if not old_path or not new_path or old_path == new_path:
            return 0
        renamed = self.renamed_vectors(old_path, new_path, new_title)
        await self.remove_by_path(old_path)
        await self.store_vectors(renamed)
        return len(renamed)

    async def count_vectors(self) -> int:
        return len(self._vectors)

    async def close(self) -> None:
        self._vectors.clear()
