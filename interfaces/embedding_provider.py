"""EmbeddingsProvider protocol for SculptEmbed - abstract interface for embedding backends."""

from typing import Any, Protocol


class EmbeddingsProvider(Protocol):
    """Abstract protocol for embedding providers.

    Providers must raise ``EmbeddingsProviderError`` for every failed request
    so the processor can classify the failure from its structured fields.
    """

    @property
    def provider_id(self) -> str:
        """Provider id recorded in namespaces (e.g., 'custom', 'systemsculpt')."""
        ...

    @property
    def model(self) -> str | None:
        """Model name (e.g., 'text-embedding-3-small', 'nomic-embed-text')."""
        ...

    @property
    def expected_dimension(self) -> int | None:
        """Dimension of returned vectors if known ahead of the first request."""
        ...

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            One embedding vector per input text, in input order

        Raises:
            EmbeddingsProviderError: If the request fails
        """
        ...

    def get_max_batch_size(self) -> int:
        """Maximum number of texts accepted in one request."""
        ...

    async def validate_configuration(self) -> bool:
        """Check that the provider is reachable and correctly configured."""
        ...

    def get_provider_info(self) -> dict[str, Any]:
        """Describe the provider for status output."""
        ...
