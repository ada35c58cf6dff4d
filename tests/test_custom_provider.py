"""Tests for the custom HTTP embeddings provider against a local aiohttp server."""

import pytest
import pytest_asyncio
from aiohttp import web

from core.exceptions import EmbeddingsProviderError
from core.models import ContentBlockedFailure, CooldownFailure, FatalFailure, classify_failure
from core.types import ProviderErrorCode
from providers.embeddings.custom_provider import CustomEmbeddingsProvider


class FakeEmbeddingsServer:
    """Local HTTP server recording requests and replying with a configured handler."""

    def __init__(self):
        self.requests = []
        self.reply = self.openai_reply
        self._runner = None
        self.port = None

    @staticmethod
    def vector_for(text: str):
        return [float(len(text)), 1.0, 0.5]

    async def openai_reply(self, payload):
        data = [
            {"index": i, "embedding": self.vector_for(text)}
            for i, text in enumerate(payload["input"])
        ]
        # out of order on purpose, the provider sorts by index
        return web.json_response({"data": list(reversed(data))})

    async def ollama_reply(self, payload):
        return web.json_response({"embedding": self.vector_for(payload["prompt"])})

    async def handle(self, request: web.Request) -> web.Response:
        payload = await request.json()
        self.requests.append({"path": request.path, "headers": dict(request.headers), "json": payload})
        return await self.reply(payload)

    async def start(self):
        app = web.Application()
        app.router.add_post("/v1/embeddings", self.handle)
        app.router.add_post("/api/embeddings", self.handle)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        self.port = self._runner.addresses[0][1]

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()

    def url(self, path: str = "/v1/embeddings") -> str:
        return f"http://127.0.0.1:{self.port}{path}"


@pytest_asyncio.fixture
async def server():
    fake = FakeEmbeddingsServer()
    await fake.start()
    yield fake
    await fake.stop()


class TestOpenAIFormat:

    @pytest.mark.asyncio
    async def test_vectors_in_input_order(self, server):
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="nomic-embed-text", api_key="sk-test")

        vectors = await provider.generate_embeddings(["a", "bbb", "cc"])

        assert vectors == [[1.0, 1.0, 0.5], [3.0, 1.0, 0.5], [2.0, 1.0, 0.5]]
        request = server.requests[0]
        assert request["json"] == {"input": ["a", "bbb", "cc"], "model": "nomic-embed-text", "encoding_format": "float"}
        assert request["headers"]["Authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_learns_dimension(self, server):
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")
        assert provider.expected_dimension is None

        await provider.generate_embeddings(["x"])

        assert provider.expected_dimension == 3

    @pytest.mark.asyncio
    async def test_splits_by_max_batch_size(self, server):
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m", max_batch_size=2)

        vectors = await provider.generate_embeddings(["a", "b", "c", "d", "e"])

        assert len(vectors) == 5
        assert [len(r["json"]["input"]) for r in server.requests] == [2, 2, 1]
        assert provider.get_usage_stats()["requests_made"] == 3

    @pytest.mark.asyncio
    async def test_bare_array_response(self, server):
        async def bare(payload):
            return web.json_response([[0.1, 0.2] for _ in payload["input"]])

        server.reply = bare
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        assert await provider.generate_embeddings(["a", "b"]) == [[0.1, 0.2], [0.1, 0.2]]

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self, server):
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")
        assert await provider.generate_embeddings([]) == []
        assert server.requests == []


class TestOllamaFormat:

    @pytest.mark.asyncio
    async def test_one_request_per_text(self, server):
        server.reply = server.ollama_reply
        provider = CustomEmbeddingsProvider(base_url=server.url("/api/embeddings"), model="nomic-embed-text")

        assert provider.is_ollama_style
        vectors = await provider.generate_embeddings(["one", "three"])

        assert vectors == [[3.0, 1.0, 0.5], [5.0, 1.0, 0.5]]
        assert sorted(r["json"]["prompt"] for r in server.requests) == ["one", "three"]

    def test_explicit_format_overrides_detection(self):
        provider = CustomEmbeddingsProvider(base_url="http://host/embed", model="m", api_format="ollama")
        assert provider.is_ollama_style
        provider = CustomEmbeddingsProvider(base_url="http://host/api/embeddings", model="m", api_format="openai")
        assert not provider.is_ollama_style


class TestErrors:

    @pytest.mark.asyncio
    async def test_html_403_becomes_content_blocked(self, server):
        async def waf(payload):
            return web.Response(status=403, text="<!DOCTYPE html><html>Access denied</html>", content_type="text/html")

        server.reply = waf
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])

        error = exc_info.value
        assert error.status == 403
        assert error.details["kind"] == "html-response"
        assert error.endpoint == server.url()
        assert isinstance(classify_failure(error), ContentBlockedFailure)
        assert provider.get_usage_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_429_retry_after(self, server):
        async def limited(payload):
            return web.json_response({"error": "rate limited"}, status=429, headers={"Retry-After": "110"})

        server.reply = limited
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])

        error = exc_info.value
        assert error.code == ProviderErrorCode.RATE_LIMITED
        assert error.retry_in_ms == 110000
        failure = classify_failure(error)
        assert isinstance(failure, CooldownFailure)
        assert failure.retry_in_ms == 110000

    @pytest.mark.asyncio
    async def test_json_401_is_fatal(self, server):
        async def unauthorized(payload):
            return web.json_response({"error": {"message": "Invalid API key"}}, status=401)

        server.reply = unauthorized
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])

        assert exc_info.value.license_related
        assert "Invalid API key" in exc_info.value.message
        assert isinstance(classify_failure(exc_info.value), FatalFailure)

    @pytest.mark.asyncio
    async def test_unsupported_payload(self, server):
        async def odd(payload):
            return web.json_response({"vectors": []})

        server.reply = odd
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_non_numeric_vector(self, server):
        async def bad_vector(payload):
            return web.json_response({"data": [{"index": 0, "embedding": ["x", 1]}]})

        server.reply = bad_vector
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])
        assert exc_info.value.details["kind"] == "invalid-format"

    @pytest.mark.asyncio
    async def test_connection_refused_is_network_error(self, server):
        url = server.url()
        await server.stop()
        server._runner = None
        provider = CustomEmbeddingsProvider(base_url=url, model="m", timeout=5)

        with pytest.raises(EmbeddingsProviderError) as exc_info:
            await provider.generate_embeddings(["text"])

        assert exc_info.value.code == ProviderErrorCode.NETWORK_ERROR
        assert exc_info.value.transient

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        with pytest.raises(EmbeddingsProviderError):
            await CustomEmbeddingsProvider(base_url="", model="m").generate_embeddings(["a"])
        with pytest.raises(EmbeddingsProviderError):
            await CustomEmbeddingsProvider(base_url="http://host/v1", model=" ").generate_embeddings(["a"])


class TestValidateConfiguration:

    @pytest.mark.asyncio
    async def test_valid_endpoint(self, server):
        provider = CustomEmbeddingsProvider(base_url=server.url(), model="m")
        assert await provider.validate_configuration() is True

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        provider = CustomEmbeddingsProvider(base_url="not a url", model="m")
        assert await provider.validate_configuration() is False

    def test_provider_info(self):
        provider = CustomEmbeddingsProvider(base_url="http://host/v1/embeddings/", model=" m ", max_batch_size=0)
        info = provider.get_provider_info()
        assert info["endpoint"] == "http://host/v1/embeddings"
        assert info["model"] == "m"
        assert info["format"] == "openai"
        assert info["max_batch_size"] == 25
