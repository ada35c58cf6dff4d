"""DuckDB vector storage for SculptEmbed - persistent VectorStorage implementation."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import duckdb
from loguru import logger

from core.exceptions import StorageError
from core.models import VectorMetadata, VectorRecord
from core.types import ChunkIndex, FilePath, VectorId

from .memory_storage import InMemoryVectorStorage


class DuckDBVectorStorage:
    """Stores vectors in a single DuckDB table.

    Every row is mirrored in an in-memory cache loaded at ``connect()``, so
    reads (including the synchronous ``get_vector_sync``) never hit the
    database. Writes go to DuckDB first and update the cache on success.
    """

    def __init__(self, db_path: Union[Path, str]):
        """Initialize DuckDB storage.

        Args:
            db_path: Path to the database file or ":memory:"
        """
        self._db_path = db_path
        self.connection: Optional[Any] = None
        self._cache = InMemoryVectorStorage()

    @property
    def db_path(self) -> Union[Path, str]:
        return self._db_path

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    def connect(self) -> None:
        """Open the database, create the schema and warm the cache."""
        logger.info(f"Connecting to DuckDB vector store: {self._db_path}")

        if str(self._db_path) != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.connection = duckdb.connect(str(self._db_path))
            self.create_schema()
            self._load_cache()
        except duckdb.Error as e:
            logger.error(f"DuckDB connection failed: {e}")
            raise StorageError(operation="connect", reason=str(e)) from e

        logger.info(f"DuckDB vector store ready ({len(self._cache)} vectors)")

    def disconnect(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            logger.info("DuckDB connection closed")

    def create_schema(self) -> None:
        """Create the vectors table and its indexes."""
        conn = self._require_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS vectors (
                id TEXT PRIMARY KEY,
                path TEXT NOT NULL,
                chunk_id INTEGER NOT NULL,
                namespace TEXT NOT NULL,
                content_hash TEXT,
                embedding DOUBLE[] NOT NULL,
                metadata TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_vectors_path ON vectors(path)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_vectors_namespace ON vectors(namespace)")

    def _require_connection(self) -> Any:
        if self.connection is None:
            raise StorageError(operation="query", reason="No database connection")
        return self.connection

    def execute_query(self, query: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a SQL query and return rows as dictionaries."""
        conn = self._require_connection()
        try:
            if params:
                results = conn.execute(query, params).fetchall()
            else:
                results = conn.execute(query).fetchall()
        except duckdb.Error as e:
            logger.error(f"Failed to execute query: {e}")
            raise StorageError(operation="query", reason=str(e)) from e

        if not results:
            return []
        column_names = [desc[0] for desc in conn.description]
        return [dict(zip(column_names, row)) for row in results]

    def _load_cache(self) -> None:
        rows = self.execute_query("SELECT id, path, chunk_id, embedding, metadata FROM vectors")
        records = []
        for row in rows:
            try:
                records.append(self._row_to_record(row))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable vector row {row.get('id')}: {e}")
        self._cache = InMemoryVectorStorage(records)

    @staticmethod
    def _row_to_record(row: Dict[str, Any]) -> VectorRecord:
        return VectorRecord(
            id=VectorId(row["id"]),
            path=FilePath(row["path"]),
            chunk_id=ChunkIndex(row["chunk_id"]),
            embedding=[float(x) for x in row["embedding"]],
            metadata=VectorMetadata.from_dict(json.loads(row["metadata"])),
        )

    @staticmethod
    def _record_to_row(record: VectorRecord) -> List[Any]:
        return [
            record.id,
            record.path,
            record.chunk_id,
            record.namespace,
            record.metadata.content_hash,
            list(record.embedding),
            json.dumps(record.metadata.to_dict()),
        ]

    def _delete_ids(self, ids: List[str]) -> None:
        if not ids:
            return
        conn = self._require_connection()
        try:
            conn.executemany("DELETE FROM vectors WHERE id = ?", [[vector_id] for vector_id in ids])
        except duckdb.Error as e:
            raise StorageError(operation="delete", reason=str(e)) from e

    async def store_vectors(self, vectors: List[VectorRecord]) -> None:
        """Upsert vectors by id."""
        if not vectors:
            return
        conn = self._require_connection()
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.executemany(
                "INSERT OR REPLACE INTO vectors (id, path, chunk_id, namespace, content_hash, embedding, metadata) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                [self._record_to_row(vector) for vector in vectors],
            )
            conn.execute("COMMIT")
        except duckdb.Error as e:
            try:
                conn.execute("ROLLBACK")
                logger.info("Transaction rolled back due to error")
            except duckdb.Error as rollback_error:
                logger.warning(f"Rollback failed: {rollback_error}")
            logger.error(f"Failed to store {len(vectors)} vectors: {e}")
            raise StorageError(operation="store", reason=str(e)) from e

        await self._cache.store_vectors(vectors)

    async def remove_by_path_except_ids(self, path: str, namespace: str, keep_ids: Iterable[str]) -> int:
        stale = self._cache.ids_to_remove_except_ids(path, namespace, keep_ids)
        self._delete_ids(stale)
        return await self._cache.remove_ids(stale)

    async def remove_by_path_except_hashes(self, path: str, namespace: str, keep_hashes: Iterable[str]) -> int:
        stale = self._cache.ids_to_remove_except_hashes(path, namespace, keep_hashes)
        self._delete_ids(stale)
        return await self._cache.remove_ids(stale)

    async def get_vectors_by_path(self, path: str) -> List[VectorRecord]:
        return await self._cache.get_vectors_by_path(path)

    def get_vector_sync(self, vector_id: str) -> Optional[VectorRecord]:
        return self._cache.get_vector_sync(vector_id)

    async def remove_ids(self, ids: Iterable[str]) -> int:
        present = [vector_id for vector_id in ids if vector_id in self._cache]
        self._delete_ids(present)
        return await self._cache.remove_ids(present)

    async def remove_by_path(self, path: str) -> int:
        return await self.remove_ids([v.id for v in await self._cache.get_vectors_by_path(path)])

    async def remove_by_namespace_prefix(self, prefix: str) -> int:
        ids = [v.id for v in self._cache.all_vectors() if v.namespace.startswith(prefix)]
        removed = await self.remove_ids(ids)
        if removed:
            logger.info(f"Removed {removed} vectors with namespace prefix {prefix!r}")
        return removed

    async def get_vectors_by_namespace(self, namespace: str) -> List[VectorRecord]:
        return await self._cache.get_vectors_by_namespace(namespace)

    async def get_distinct_paths(self) -> List[str]:
        return await self._cache.get_distinct_paths()

    async def rename_by_path(self, old_path: str, new_path: str, new_title: Optional[str] = None) -> int:
        if not old_path or not new_path or old_path == new_path:
            return 0
        renamed = self._cache.renamed_vectors(old_path, new_path, new_title)
        await self.remove_by_path(old_path)
        await self.store_vectors(renamed)
        return len(renamed)

    async def count_vectors(self) -> int:
        return len(self._cache)

    async def close(self) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        return f"DuckDBVectorStorage(db_path={str(self._db_path)!r}, vectors={len(self._cache)})"
