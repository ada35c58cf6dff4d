"""Custom embeddings provider for SculptEmbed - any OpenAI-compatible or Ollama-style HTTP endpoint."""

import asyncio
import math
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import aiohttp
from loguru import logger

from core.exceptions import EmbeddingsProviderError
from core.types import ProviderErrorCode

DEFAULT_MAX_BATCH_SIZE = 25
OLLAMA_MAX_CONCURRENT = 5
HTML_SAMPLE_CHARS = 160

_NETWORK_HINTS = ("net::err", "econn", "enotfound", "timeout", "timed out", "network")


def parse_retry_after(value: Optional[str], now: Optional[float] = None) -> Optional[int]:
    """Convert a ``Retry-After`` header (seconds or HTTP date) to milliseconds."""
    if not value:
        return None

    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None

    if seconds is not None:
        return int(seconds * 1000) if seconds >= 0 else None

    try:
        absolute = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if absolute is None:
        return None

    diff = absolute.timestamp() - (now if now is not None else time.time())
    return int(diff * 1000) if diff > 0 else None


def _is_html(body: str, content_type: Optional[str]) -> bool:
    trimmed = body.strip()
    lowered = trimmed.lower()
    return bool(
        (content_type and "text/html" in content_type.lower())
        or lowered.startswith("<!doctype html")
        or lowered.startswith("<html")
        or trimmed.startswith("<")
    )


def _message_from_payload(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None

    error_field = payload.get("error")
    if isinstance(error_field, dict):
        error_field = error_field.get("message")
    message = payload.get("message") or payload.get("detail")

    message = message.strip() if isinstance(message, str) else ""
    error_text = error_field.strip() if isinstance(error_field, str) else ""
    if message and error_text and message.lower() != error_text.lower():
        return f"{message} ({error_text})"
    return message or error_text or None


def classify_error_code(status: Optional[int], message: str, is_html: bool = False) -> ProviderErrorCode:
    """Map an HTTP failure to a provider error code."""
    if is_html:
        if status == 403 or (status is not None and status >= 500):
            return ProviderErrorCode.HOST_UNAVAILABLE
        return ProviderErrorCode.INVALID_RESPONSE
    if status in (401, 402, 403):
        return ProviderErrorCode.LICENSE_INVALID
    if status == 429:
        return ProviderErrorCode.RATE_LIMITED
    if status == 0 or (not status and any(hint in message.lower() for hint in _NETWORK_HINTS)):
        return ProviderErrorCode.NETWORK_ERROR
    if "temporarily unavailable" in message.lower():
        return ProviderErrorCode.HOST_UNAVAILABLE
    if status is not None and status >= 400:
        return ProviderErrorCode.HTTP_ERROR
    return ProviderErrorCode.NETWORK_ERROR


def is_transient_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return status >= 500 or status in (408, 429)


def build_http_error(
    status: int,
    body: str,
    headers: Optional[Mapping[str, str]] = None,
    endpoint: Optional[str] = None,
    provider_id: str = "custom",
    payload: Any = None,
) -> EmbeddingsProviderError:
    """Build a structured provider error from a non-200 response.

    Args:
        status: HTTP status
        body: Raw response text
        headers: Response headers (``Content-Type``, ``Retry-After``)
        endpoint: Request URL
        provider_id: Provider raising the error
        payload: Parsed JSON body, if any

    Returns:
        Error with code, transient flag, cooldown hint and details populated
    """
    headers = headers or {}
    lowered_headers = {key.lower(): value for key, value in headers.items()}
    trimmed = (body or "").strip()
    is_html = _is_html(trimmed, lowered_headers.get("content-type"))

    if status in (502, 503, 504):
        message = (
            f"Embeddings API is temporarily unavailable (HTTP {status}). "
            "The upstream service returned a gateway error page instead of JSON."
            if is_html
            else f"Embeddings API is temporarily unavailable (HTTP {status}). Retry shortly."
        )
    elif is_html:
        message = (
            f"Received HTML (HTTP {status}) instead of JSON from the embeddings API. "
            "This usually means a gateway or CDN page was returned."
        )
    else:
        message = _message_from_payload(payload) or trimmed or f"HTTP {status}"

    details: Dict[str, Any] = dict(payload) if isinstance(payload, dict) else {}
    if is_html:
        details = {"kind": "html-response", "sample": trimmed[:HTML_SAMPLE_CHARS], "full_text": trimmed, **details}
    elif trimmed:
        details["full_text"] = trimmed

    code = classify_error_code(status, message, is_html)
    return EmbeddingsProviderError(
        f"API error {status}: {message}",
        code=code,
        status=status,
        transient=is_transient_status(status),
        retry_in_ms=parse_retry_after(lowered_headers.get("retry-after")),
        license_related=code == ProviderErrorCode.LICENSE_INVALID,
        provider_id=provider_id,
        endpoint=endpoint,
        details=details,
    )


class CustomEmbeddingsProvider:
    """Embeddings provider for a user-configured endpoint.

    Supports OpenAI-compatible endpoints (``{"data": [{"index", "embedding"}]}``
    or a bare array of vectors) and Ollama-style ``/api/embeddings`` endpoints,
    which take one prompt per request and are called with bounded parallelism.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        provider_id: str = "custom",
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        expected_dimension: Optional[int] = None,
        timeout: int = 60,
        headers: Optional[Dict[str, str]] = None,
        api_format: str = "auto",
    ):
        """Initialize the provider.

        Args:
            base_url: Full embeddings endpoint URL
            model: Model name sent with each request
            api_key: Optional bearer token
            provider_id: Id recorded in namespaces
            max_batch_size: Maximum texts per request
            expected_dimension: Known dimension, learned from responses otherwise
            timeout: Request timeout in seconds
            headers: Extra request headers
            api_format: 'openai', 'ollama' or 'auto' (detect from the endpoint path)
        """
        self._endpoint = (base_url or "").strip().rstrip("/")
        self._model = (model or "").strip()
        self._provider_id = provider_id
        self._max_batch_size = max_batch_size if max_batch_size > 0 else DEFAULT_MAX_BATCH_SIZE
        self._expected_dimension = expected_dimension
        self._timeout = timeout

        self._headers = {"Content-Type": "application/json", **(headers or {})}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

        if api_format == "auto":
            self._ollama_style = "/api/embeddings" in self._endpoint.lower()
        else:
            self._ollama_style = api_format == "ollama"

        self._usage_stats = {"requests_made": 0, "embeddings_generated": 0, "errors": 0}

        logger.info(
            f"Custom embeddings provider initialized: {self._provider_id} "
            f"(endpoint: {self._endpoint}, model: {self._model}, ollama: {self._ollama_style})"
        )

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def expected_dimension(self) -> Optional[int]:
        return self._expected_dimension

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def is_ollama_style(self) -> bool:
        return self._ollama_style

    def get_max_batch_size(self) -> int:
        return self._max_batch_size

    def get_usage_stats(self) -> Dict[str, int]:
        return dict(self._usage_stats)

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "provider_id": self._provider_id,
            "model": self._model,
            "endpoint": self._endpoint,
            "format": "ollama" if self._ollama_style else "openai",
            "max_batch_size": self._max_batch_size,
            "expected_dimension": self._expected_dimension,
        }

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for ``texts``.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, in input order

        Raises:
            EmbeddingsProviderError: On configuration, HTTP, network or format errors
        """
        if not self._endpoint:
            raise EmbeddingsProviderError(
                "Custom endpoint URL is required",
                code=ProviderErrorCode.INVALID_RESPONSE,
                provider_id=self._provider_id,
                details={"kind": "configuration"},
            )
        if not self._model:
            raise EmbeddingsProviderError(
                "Custom embeddings model is required",
                code=ProviderErrorCode.INVALID_RESPONSE,
                provider_id=self._provider_id,
                details={"kind": "configuration"},
            )
        if not texts:
            return []

        logger.debug(f"Generating embeddings for {len(texts)} texts using {self._model} at {self._endpoint}")

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout)) as session:
                embeddings: List[List[float]] = []
                for start in range(0, len(texts), self._max_batch_size):
                    batch = texts[start:start + self._max_batch_size]
                    if self._ollama_style:
                        embeddings.extend(await self._embed_ollama(session, batch))
                    else:
                        embeddings.extend(await self._embed_openai(session, batch))
        except EmbeddingsProviderError:
            self._usage_stats["errors"] += 1
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._usage_stats["errors"] += 1
            raise EmbeddingsProviderError(
                f"Network error calling {self._endpoint}: {e or type(e).__name__}",
                code=ProviderErrorCode.NETWORK_ERROR,
                transient=True,
                provider_id=self._provider_id,
                endpoint=self._endpoint,
                details={"kind": "network", "error_type": type(e).__name__},
                cause=e,
            ) from e

        self._usage_stats["embeddings_generated"] += len(embeddings)
        if self._expected_dimension is None and embeddings and embeddings[0]:
            self._expected_dimension = len(embeddings[0])
            logger.info(f"Auto-detected embedding dimensions: {self._expected_dimension} for model {self._model}")
        return embeddings

    async def _post(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> Any:
        self._usage_stats["requests_made"] += 1
        async with session.post(self._endpoint, headers=self._headers, json=payload) as response:
            if response.status != 200:
                body = await response.text()
                parsed = None
                try:
                    parsed = await response.json(content_type=None)
                except ValueError:
                    pass
                raise build_http_error(
                    response.status,
                    body,
                    headers=dict(response.headers),
                    endpoint=self._endpoint,
                    provider_id=self._provider_id,
                    payload=parsed,
                )

            try:
                return await response.json(content_type=None)
            except ValueError as e:
                body = await response.text()
                raise EmbeddingsProviderError(
                    "Response from embeddings endpoint is not valid JSON",
                    code=ProviderErrorCode.INVALID_RESPONSE,
                    status=response.status,
                    provider_id=self._provider_id,
                    endpoint=self._endpoint,
                    details={"kind": "html-response" if _is_html(body, None) else "invalid-json",
                             "sample": body.strip()[:HTML_SAMPLE_CHARS]},
                    cause=e,
                ) from e

    async def _embed_openai(self, session: aiohttp.ClientSession, texts: List[str]) -> List[List[float]]:
        data = await self._post(session, {"input": texts, "model": self._model, "encoding_format": "float"})

        if isinstance(data, dict) and isinstance(data.get("data"), list):
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            return [self._coerce_vector(item.get("embedding")) for item in items]

        if isinstance(data, list) and data and isinstance(data[0], list):
            return [self._coerce_vector(vector) for vector in data]

        raise self._invalid_response("Unsupported response format from custom endpoint")

    async def _embed_ollama(self, session: aiohttp.ClientSession, texts: List[str]) -> List[List[float]]:
        semaphore = asyncio.Semaphore(OLLAMA_MAX_CONCURRENT)

        async def embed_one(text: str) -> List[float]:
            async with semaphore:
                data = await self._post(session, {"model": self._model, "prompt": text})
            if isinstance(data, dict):
                if isinstance(data.get("embedding"), list):
                    return self._coerce_vector(data["embedding"])
                items = data.get("data")
                if isinstance(items, list) and items and isinstance(items[0], dict):
                    return self._coerce_vector(items[0].get("embedding"))
            raise self._invalid_response("Unsupported response format from Ollama endpoint")

        tasks = [asyncio.create_task(embed_one(text)) for text in texts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    def _coerce_vector(self, raw: Any) -> List[float]:
        if not isinstance(raw, list):
            raise self._invalid_response("Embedding entry is not an array")
        try:
            vector = [float(x) for x in raw]
        except (TypeError, ValueError) as e:
            raise self._invalid_response(f"Embedding contains non-numeric values: {e}") from e
        if not all(math.isfinite(x) for x in vector):
            raise self._invalid_response("Embedding contains non-finite values")
        return vector

    def _invalid_response(self, message: str) -> EmbeddingsProviderError:
        return EmbeddingsProviderError(
            message,
            code=ProviderErrorCode.INVALID_RESPONSE,
            provider_id=self._provider_id,
            endpoint=self._endpoint,
            details={"kind": "invalid-format"},
        )

    async def validate_configuration(self) -> bool:
        """Check the endpoint URL and send a one-text test request."""
        parsed = urlparse(self._endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.error(f"Invalid embeddings endpoint: {self._endpoint!r}")
            return False

        try:
            await self.generate_embeddings(["test"])
            return True
        except EmbeddingsProviderError as e:
            logger.error(f"Embeddings provider validation failed: {e}")
            return False

    def __repr__(self) -> str:
        return f"CustomEmbeddingsProvider(endpoint={self._endpoint!r}, model={self._model!r})"
