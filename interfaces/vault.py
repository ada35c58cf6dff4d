"""Vault protocol for SculptEmbed - source of note contents."""

from typing import Protocol


class Vault(Protocol):
    """Read access to the notes being embedded."""

    async def read(self, path: str) -> str:
        """Return the content of ``path``; raise on I/O errors."""
        ...

    def list_markdown_files(self) -> list[str]:
        """Paths of every markdown note in the vault."""
        ...
