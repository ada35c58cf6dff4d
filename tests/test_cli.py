"""Tests for the sculptembed command-line interface."""

import json
import os

import pytest
import pytest_asyncio
from aiohttp import web

from core.exceptions import EmbeddingsProviderError
from core.models import FailedProcessingDetail, ProcessingResult, VectorMetadata, VectorRecord
from core.types import ProviderErrorCode
from providers.storage.memory_storage import InMemoryVectorStorage
from sculptembed.cli import (
    EXIT_FAILED_PATHS,
    EXIT_FATAL,
    EXIT_OK,
    OutputFormatter,
    async_main,
    collect_status,
    create_parser,
    format_result,
)
from sculptembed.config import EmbeddingsSettings
from sculptembed.namespace import build_vector_id

NOTE = "# Ideas\n\n" + "A sentence about embeddings and vaults. " * 6


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in list(os.environ):
        if key.startswith("SCULPTEMBED_"):
            monkeypatch.delenv(key)


def make_record(path, index, namespace, complete=None):
    return VectorRecord(
        id=build_vector_id(namespace, path, index),
        path=path,
        chunk_id=index,
        embedding=[0.1, 0.2, 0.3],
        metadata=VectorMetadata(
            namespace=namespace, provider="custom", model="m", dimension=3,
            content_hash=f"h{index}", complete=complete,
        ),
    )


class TestParser:

    def test_index_arguments(self, tmp_path):
        args = create_parser().parse_args(["index", str(tmp_path), "--verbose"])
        assert args.command == "index"
        assert args.vault_dir == tmp_path
        assert args.verbose is True

    def test_namespace_arguments(self):
        args = create_parser().parse_args(["namespace", "encode", "custom", "m", "768"])
        assert args.namespace_command == "encode"
        assert args.dimension == 768


class TestNamespaceCommand:

    @pytest.mark.asyncio
    async def test_encode(self, capsys):
        code = await async_main(["namespace", "encode", "custom", "nomic:embed", "768"])

        lines = capsys.readouterr().out.splitlines()
        assert code == EXIT_OK
        assert lines[0] == "custom:nomic%3Aembed:v2:768"
        assert lines[1] == "custom:nomic%3Aembed:v2:768::<path>#0"

    @pytest.mark.asyncio
    async def test_decode(self, capsys):
        code = await async_main(["namespace", "decode", "systemsculpt:openrouter/openai/text-embedding-3-small:v2:1536"])

        decoded = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert decoded == {
            "provider": "systemsculpt",
            "model": "openrouter/openai/text-embedding-3-small",
            "schema": 2,
            "dimension": 1536,
        }

    @pytest.mark.asyncio
    async def test_decode_invalid(self):
        assert await async_main(["namespace", "decode", "garbage"]) == EXIT_FAILED_PATHS

    @pytest.mark.asyncio
    async def test_no_command_prints_help(self, capsys):
        assert await async_main([]) == EXIT_FAILED_PATHS
        assert "usage" in capsys.readouterr().out.lower()


class TestFormatResult:

    def test_success(self, capsys):
        code = format_result(ProcessingResult(completed=3), OutputFormatter())
        assert code == EXIT_OK
        assert "Completed: 3, failed: 0, skipped: 0" in capsys.readouterr().out

    def test_failed_paths(self, capsys):
        result = ProcessingResult(
            completed=1,
            failed_paths=["b.md"],
            failed_details={"b.md": FailedProcessingDetail(code="READ_ERROR", message="gone")},
        )

        assert format_result(result, OutputFormatter()) == EXIT_FAILED_PATHS
        assert "b.md: READ_ERROR gone" in capsys.readouterr().out

    def test_fatal_error_wins(self, capsys):
        error = EmbeddingsProviderError(
            "slow down", code=ProviderErrorCode.RATE_LIMITED, status=429, transient=True, retry_in_ms=110000,
        )
        result = ProcessingResult(fatal_error=error, failed_paths=["a.md"])

        assert format_result(result, OutputFormatter()) == EXIT_FATAL
        err = capsys.readouterr().err
        assert "RATE_LIMITED (HTTP 429)" in err
        assert "Retry in 110s." in err


class TestStatus:

    @pytest.mark.asyncio
    async def test_collect_status(self):
        current = "custom:m:v2:3"
        storage = InMemoryVectorStorage([
            make_record("done.md", 0, current, complete=True),
            make_record("partial.md", 0, current, complete=False),
            make_record("old.md", 0, "custom:m:v1:3", complete=True),
        ])
        settings = EmbeddingsSettings(provider_id="custom", model="m")

        report = await collect_status(storage, settings)

        assert report == {"paths": 3, "incomplete": ["partial.md"], "stale": ["old.md"]}

    @pytest.mark.asyncio
    async def test_status_command_json(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("SCULPTEMBED_STORAGE", "memory")

        code = await async_main(["status", "--vault", str(tmp_path), "--json"])

        assert code == EXIT_OK
        assert json.loads(capsys.readouterr().out) == {"paths": 0, "incomplete": [], "stale": []}


@pytest_asyncio.fixture
async def embeddings_server():
    async def handle(request):
        payload = await request.json()
        return web.json_response({"data": [{"index": i, "embedding": [1.0, 0.0, 0.0]}
                                           for i, _ in enumerate(payload["input"])]})

    app = web.Application()
    app.router.add_post("/v1/embeddings", handle)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    yield f"http://127.0.0.1:{runner.addresses[0][1]}/v1/embeddings"
    await runner.cleanup()


class TestIndexCommand:

    @pytest.mark.asyncio
    async def test_index_vault(self, tmp_path, capsys, embeddings_server):
        (tmp_path / "Idea.md").write_text(NOTE, encoding="utf-8")
        (tmp_path / "Other.md").write_text(NOTE.replace("Ideas", "Other"), encoding="utf-8")
        config = tmp_path / "sculptembed.yaml"
        config.write_text(f"base_url: {embeddings_server}\nmodel: m\n", encoding="utf-8")

        code = await async_main(["index", str(tmp_path)])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "Completed: 2, failed: 0" in out
        assert (tmp_path / ".sculptembed.duckdb").exists()

    @pytest.mark.asyncio
    async def test_index_without_endpoint_is_fatal(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("SCULPTEMBED_STORAGE", "memory")
        (tmp_path / "Idea.md").write_text(NOTE, encoding="utf-8")

        assert await async_main(["index", str(tmp_path)]) == EXIT_FATAL
        assert "base_url" in capsys.readouterr().err
