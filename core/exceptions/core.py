"""SculptEmbed Core Exceptions - Core exception classes for error handling.

This module contains the exception hierarchy for the SculptEmbed system. These
exceptions provide clear error categorization and enable proper error handling
throughout the application.
"""

from typing import Optional, Any, Dict, Union

from ..types import ProviderErrorCode


class SculptEmbedError(Exception):
    """Base exception for all SculptEmbed-specific errors.

    This is the root exception class that all other SculptEmbed exceptions
    inherit from. It provides common functionality for error handling,
    context tracking, and debugging.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        """Initialize SculptEmbed error.

        Args:
            message: Human-readable error description
            context: Optional dictionary with error context (e.g., paths, chunk indices)
            cause: Optional underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause

    def __str__(self) -> str:
        """Return formatted error message with context."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message

    def add_context(self, key: str, value: Any) -> "SculptEmbedError":
        """Add context information to the error."""
        self.context[key] = value
        return self


class ValidationError(SculptEmbedError):
    """Raised when data validation fails.

    This exception is used when input data doesn't meet expected format,
    type, or business rule requirements.
    """

    def __init__(
        self,
        field: str,
        value: Any,
        reason: str,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize validation error.

        Args:
            field: Name of the field that failed validation
            value: The invalid value
            reason: Description of why validation failed
            context: Optional additional context
        """
        message = f"Validation failed for field '{field}': {reason}"
        super().__init__(message, context)
        self.field = field
        self.value = value
        self.reason = reason


class EmbeddingError(SculptEmbedError):
    """Raised when embedding operations fail outside of the provider call.

    Used for errors in building, normalizing, or persisting vectors.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        operation: Optional[str] = None,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize embedding error.

        Args:
            provider: Embedding provider id (e.g., "custom")
            model: Model name (e.g., "nomic-embed-text")
            operation: Operation that failed (e.g., "normalize", "store")
            reason: Description of what went wrong
            context: Optional additional context
        """
        parts = []
        if provider:
            parts.append(f"provider={provider}")
        if model:
            parts.append(f"model={model}")
        if operation:
            parts.append(f"operation={operation}")

        prefix = f"Embedding error ({', '.join(parts)})" if parts else "Embedding error"
        message = f"{prefix}: {reason}" if reason else prefix

        super().__init__(message, context)
        self.provider = provider
        self.model = model
        self.operation = operation
        self.reason = reason


class PreprocessingError(SculptEmbedError):
    """Raised when reading or chunking a file fails."""

    def __init__(
        self,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize preprocessing error.

        Args:
            file_path: Path to file that failed
            operation: Operation that failed (e.g., "read", "chunk")
            reason: Description of what went wrong
            context: Optional additional context
        """
        parts = []
        if file_path:
            parts.append(f"file={file_path}")
        if operation:
            parts.append(f"operation={operation}")

        prefix = f"Preprocessing error ({', '.join(parts)})" if parts else "Preprocessing error"
        message = f"{prefix}: {reason}" if reason else prefix

        super().__init__(message, context)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason


class StorageError(SculptEmbedError):
    """Raised when vector storage operations fail.

    This exception is used for errors related to storage connections,
    queries, or data integrity issues.
    """

    def __init__(
        self,
        operation: Optional[str] = None,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize storage error.

        Args:
            operation: Storage operation that failed (e.g., "store", "remove")
            reason: Description of what went wrong
            context: Optional additional context
        """
        prefix = f"Storage error (operation={operation})" if operation else "Storage error"
        message = f"{prefix}: {reason}" if reason else prefix

        super().__init__(message, context)
        self.operation = operation
        self.reason = reason


class ConfigurationError(SculptEmbedError):
    """Raised when configuration is invalid or missing.

    This exception is used for errors related to configuration files,
    environment variables, or system setup issues.
    """

    def __init__(
        self,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize configuration error.

        Args:
            config_key: Configuration key that caused the error
            config_value: Invalid configuration value
            reason: Description of what went wrong
            context: Optional additional context
        """
        if config_key:
            message = f"Configuration error for '{config_key}': {reason}"
        else:
            message = f"Configuration error: {reason}" if reason else "Configuration error"

        super().__init__(message, context)
        self.config_key = config_key
        self.config_value = config_value
        self.reason = reason


class EmbeddingsProviderError(SculptEmbedError):
    """Raised by embedding providers when a request fails.

    Every provider surfaces failures as this type so the processor can
    classify them from structured fields: a machine-readable ``code``, an
    HTTP ``status`` when applicable, ``transient``, and a ``retry_in_ms``
    cooldown hint.
    """

    def __init__(
        self,
        message: str,
        code: Union[ProviderErrorCode, str] = ProviderErrorCode.UNEXPECTED_RESPONSE,
        status: Optional[int] = None,
        transient: bool = False,
        retry_in_ms: Optional[int] = None,
        license_related: bool = False,
        provider_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """Initialize provider error.

        Args:
            message: Human-readable error description
            code: Error code (ProviderErrorCode or its string value)
            status: HTTP status code if applicable
            transient: Whether the condition is expected to clear on its own
            retry_in_ms: Provider-suggested cooldown before the next request
            license_related: Whether the failure is an auth/licensing problem
            provider_id: Provider that raised the error
            endpoint: Request URL that failed
            details: Structured response details (e.g. ``{"kind": "html-response"}``)
            cause: Underlying exception
            context: Optional additional context
        """
        super().__init__(message, context, cause)
        self.code = ProviderErrorCode.from_string(code) if isinstance(code, str) else code
        self.status = status
        self.transient = transient
        self.retry_in_ms = retry_in_ms
        self.license_related = license_related
        self.provider_id = provider_id
        self.endpoint = endpoint
        self.details = details or {}

    @classmethod
    def wrap(
        cls,
        error: BaseException,
        provider_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> "EmbeddingsProviderError":
        """Return ``error`` unchanged if it is a provider error, else wrap it as non-transient."""
        if isinstance(error, EmbeddingsProviderError):
            return error

        merged = {"kind": "unexpected", "error_type": type(error).__name__}
        if details:
            merged.update(details)
        return cls(
            str(error) or type(error).__name__,
            code=ProviderErrorCode.UNEXPECTED_RESPONSE,
            transient=False,
            provider_id=provider_id,
            details=merged,
            cause=error,
        )

    def __repr__(self) -> str:
        return (
            f"EmbeddingsProviderError(code={self.code.value}, status={self.status}, "
            f"transient={self.transient}, retry_in_ms={self.retry_in_ms}, message={self.message!r})"
        )


class EmbeddingCountMismatchError(EmbeddingsProviderError):
    """Raised when a provider returns a different number of vectors than texts sent."""

    def __init__(self, expected: int, received: int, provider_id: Optional[str] = None):
        super().__init__(
            f"Embedding count mismatch: expected {expected}, got {received}",
            code=ProviderErrorCode.COUNT_MISMATCH,
            transient=False,
            provider_id=provider_id,
            details={"expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received
