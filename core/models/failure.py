"""SculptEmbed Provider Failure Model - Classified outcome of a failed provider call.

Provider errors are classified exactly once, at the provider boundary, into
one of four variants. The processor dispatches on the variant type:

- FatalFailure: stop the whole run (auth/host failure, non-transient errors)
- CooldownFailure: stop the whole run; the caller waits ``retry_in_ms``
- ContentBlockedFailure: a gateway/WAF HTML 403 that may be tied to the text
  sent; isolated to the offending chunk when blocks are content-scoped
- UnknownFailure: other transient errors; the affected file fails, others continue
"""

from dataclasses import dataclass
from typing import Optional, Union

from ..exceptions import EmbeddingsProviderError


@dataclass(frozen=True)
class FatalFailure:
    """Terminal provider failure; no further requests this run."""

    error: EmbeddingsProviderError

    @property
    def halts_run(self) -> bool:
        return True


@dataclass(frozen=True)
class CooldownFailure:
    """Provider asked callers to back off; stop now, retry later."""

    error: EmbeddingsProviderError
    retry_in_ms: Optional[int] = None

    @property
    def halts_run(self) -> bool:
        return True


@dataclass(frozen=True)
class ContentBlockedFailure:
    """Gateway/WAF HTML 403 that may be triggered by the request content."""

    error: EmbeddingsProviderError

    @property
    def halts_run(self) -> bool:
        return False


@dataclass(frozen=True)
class UnknownFailure:
    """Transient failure not attributable to content or a provider-wide cooldown."""

    error: EmbeddingsProviderError

    @property
    def halts_run(self) -> bool:
        return False


ProviderFailure = Union[FatalFailure, CooldownFailure, ContentBlockedFailure, UnknownFailure]


def is_html_forbidden(error: EmbeddingsProviderError) -> bool:
    """Return True if ``error`` is an HTTP 403 that returned an HTML page instead of JSON."""
    if error.status != 403:
        return False

    details = error.details or {}
    if details.get("kind") == "html-response":
        return True

    for key in ("sample", "text"):
        value = details.get(key)
        if isinstance(value, str) and value.strip().startswith("<"):
            return True

    message = (error.message or "").lower()
    return "received html" in message and "403" in message


def classify_failure(error: BaseException, provider_id: Optional[str] = None) -> ProviderFailure:
    """Classify any exception raised by a provider call.

    Args:
        error: Exception raised by ``generate_embeddings``
        provider_id: Provider id used when wrapping non-provider exceptions

    Returns:
        The failure variant the processor should act on
    """
    provider_error = EmbeddingsProviderError.wrap(error, provider_id=provider_id)

    if is_html_forbidden(provider_error):
        return ContentBlockedFailure(provider_error)

    if not provider_error.transient or provider_error.license_related:
        return FatalFailure(provider_error)

    retry_in_ms = provider_error.retry_in_ms
    wants_backoff = (
        provider_error.code.is_backoff_signal
        or provider_error.status == 429
        or (retry_in_ms is not None and retry_in_ms > 0)
    )
    if wants_backoff:
        return CooldownFailure(provider_error, retry_in_ms=retry_in_ms)

    return UnknownFailure(provider_error)
