"""ContentPreprocessor protocol for SculptEmbed - turns raw notes into chunks."""

from typing import Any, Protocol

from core.models import Chunk, ProcessedContent


class ContentPreprocessor(Protocol):
    """Abstract protocol for content preprocessing and chunking."""

    def process(self, content: str, path: str | None = None) -> ProcessedContent | None:
        """Normalize raw content; None when there is nothing worth embedding."""
        ...

    def chunk_content_with_hashes(
        self, content: str, source: str | None = None
    ) -> list[Chunk] | list[dict[str, Any]]:
        """Split content into indexed chunks with stable content hashes."""
        ...
