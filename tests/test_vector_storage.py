"""Tests for the in-memory and DuckDB vector storage backends."""

from unittest.mock import Mock

import duckdb
import pytest

from core.exceptions import StorageError
from core.models import VectorMetadata, VectorRecord
from providers.storage.duckdb_storage import DuckDBVectorStorage
from providers.storage.memory_storage import InMemoryVectorStorage
from sculptembed.namespace import build_vector_id

NS = "custom:m:v2:3"
OLD_NS = "custom:m:v1:3"


def make_record(path: str, index: int, content_hash: str = None, namespace: str = NS, **metadata) -> VectorRecord:
    return VectorRecord(
        id=build_vector_id(namespace, path, index),
        path=path,
        chunk_id=index,
        embedding=[0.1 * (index + 1), 0.2, 0.3],
        metadata=VectorMetadata(
            namespace=namespace,
            provider="custom",
            model="m",
            dimension=3,
            content_hash=content_hash or f"h{index}",
            title=path.rsplit("/", 1)[-1].rsplit(".", 1)[0],
            heading_path=["Top"],
            **metadata,
        ),
    )


@pytest.fixture(params=["memory", "duckdb"])
def storage(request):
    if request.param == "memory":
        yield InMemoryVectorStorage()
        return

    backend = DuckDBVectorStorage(":memory:")
    backend.connect()
    yield backend
    backend.disconnect()


class TestVectorStorage:

    @pytest.mark.asyncio
    async def test_store_and_get(self, storage):
        record = make_record("a.md", 0, complete=True, chunk_count=2)
        await storage.store_vectors([record, make_record("a.md", 1)])

        fetched = storage.get_vector_sync(record.id)
        assert fetched == record
        assert [v.chunk_id for v in await storage.get_vectors_by_path("a.md")] == [0, 1]
        assert storage.get_vector_sync("missing") is None

    @pytest.mark.asyncio
    async def test_store_is_upsert(self, storage):
        await storage.store_vectors([make_record("a.md", 0)])
        await storage.store_vectors([make_record("a.md", 0, content_hash="new")])

        vectors = await storage.get_vectors_by_path("a.md")
        assert len(vectors) == 1
        assert vectors[0].metadata.content_hash == "new"

    @pytest.mark.asyncio
    async def test_remove_except_ids_scoped_to_path_and_namespace(self, storage):
        await storage.store_vectors([
            make_record("a.md", 0),
            make_record("a.md", 1),
            make_record("a.md", 2),
            make_record("a.md", 0, namespace=OLD_NS),
            make_record("b.md", 1),
        ])

        removed = await storage.remove_by_path_except_ids("a.md", NS, {build_vector_id(NS, "a.md", 0)})

        assert removed == 2
        remaining = {v.id for v in await storage.get_vectors_by_path("a.md")}
        assert remaining == {build_vector_id(NS, "a.md", 0), build_vector_id(OLD_NS, "a.md", 0)}
        assert len(await storage.get_vectors_by_path("b.md")) == 1

    @pytest.mark.asyncio
    async def test_remove_except_hashes(self, storage):
        await storage.store_vectors([make_record("a.md", 0), make_record("a.md", 1)])

        removed = await storage.remove_by_path_except_hashes("a.md", NS, {"h1"})

        assert removed == 1
        assert [v.metadata.content_hash for v in await storage.get_vectors_by_path("a.md")] == ["h1"]

    @pytest.mark.asyncio
    async def test_remove_by_path_and_prefix(self, storage):
        await storage.store_vectors([
            make_record("a.md", 0),
            make_record("b.md", 0),
            make_record("c.md", 0, namespace=OLD_NS),
        ])

        assert await storage.remove_by_path("a.md") == 1
        assert await storage.remove_by_namespace_prefix("custom:m:v1:") == 1
        assert await storage.get_distinct_paths() == ["b.md"]

    @pytest.mark.asyncio
    async def test_get_by_namespace_and_remove_ids(self, storage):
        await storage.store_vectors([make_record("a.md", 0), make_record("b.md", 0, namespace=OLD_NS)])

        assert [v.path for v in await storage.get_vectors_by_namespace(OLD_NS)] == ["b.md"]
        assert await storage.remove_ids([build_vector_id(NS, "a.md", 0), "missing"]) == 1
        assert await storage.count_vectors() == 1

    @pytest.mark.asyncio
    async def test_rename_by_path(self, storage):
        await storage.store_vectors([make_record("old/Note.md", 0), make_record("old/Note.md", 1)])

        moved = await storage.rename_by_path("old/Note.md", "new/Renamed.md", new_title="Renamed")

        assert moved == 2
        assert await storage.get_vectors_by_path("old/Note.md") == []
        vectors = await storage.get_vectors_by_path("new/Renamed.md")
        assert [v.id for v in vectors] == [build_vector_id(NS, "new/Renamed.md", i) for i in (0, 1)]
        assert all(v.metadata.title == "Renamed" for v in vectors)


class TestDuckDBPersistence:

    @pytest.mark.asyncio
    async def test_vectors_survive_reconnect(self, tmp_path):
        db_path = tmp_path / "nested" / "vectors.duckdb"
        storage = DuckDBVectorStorage(db_path)
        storage.connect()
        record = make_record("a.md", 0, complete=False, chunk_count=3, mtime=1700000000000.0)
        await storage.store_vectors([record])
        await storage.close()

        reopened = DuckDBVectorStorage(db_path)
        reopened.connect()
        try:
            fetched = reopened.get_vector_sync(record.id)
            assert fetched is not None
            assert fetched.metadata == record.metadata
            assert fetched.embedding == pytest.approx(record.embedding)
            assert await reopened.count_vectors() == 1
        finally:
            reopened.disconnect()

    def test_query_without_connection_raises(self):
        with pytest.raises(StorageError):
            DuckDBVectorStorage(":memory:").execute_query("SELECT 1")

    @pytest.mark.asyncio
    async def test_failed_begin_raises_storage_error(self):
        storage = DuckDBVectorStorage(":memory:")
        storage.connection = Mock()
        storage.connection.execute = Mock(side_effect=duckdb.Error("cannot start transaction"))

        with pytest.raises(StorageError):
            await storage.store_vectors([make_record("a.md", 0)])

        executed = [call.args[0] for call in storage.connection.execute.call_args_list]
        assert executed == ["BEGIN TRANSACTION", "ROLLBACK"]
        assert storage.get_vector_sync(build_vector_id(NS, "a.md", 0)) is None
