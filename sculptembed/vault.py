"""Filesystem-backed vault of markdown notes."""

import asyncio
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger

from core.exceptions import PreprocessingError

MARKDOWN_SUFFIXES = (".md", ".markdown")


class FileSystemVault:
    """Reads markdown notes below a root directory.

    Paths handed to and returned from the vault are POSIX-style and relative
    to the root, matching how they are keyed in vector storage. Hidden
    directories (``.obsidian``, ``.git``, ``.trash`` ...) are not scanned.
    """

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root).expanduser().resolve()
        if not self._root.is_dir():
            raise PreprocessingError(file_path=str(root), operation="open", reason="Vault directory does not exist")

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        resolved = (self._root / path).resolve()
        if self._root != resolved and self._root not in resolved.parents:
            raise PreprocessingError(file_path=path, operation="read", reason="Path escapes the vault root")
        return resolved

    async def read(self, path: str) -> str:
        """Read a note as UTF-8 text.

        Raises:
            PreprocessingError: If the file cannot be read
        """
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PreprocessingError(file_path=path, operation="read", reason=str(e)) from e

    def get_mtime(self, path: str) -> Optional[float]:
        """Modification time in milliseconds, or None if the file is gone."""
        try:
            return self._resolve(path).stat().st_mtime * 1000
        except (OSError, PreprocessingError):
            return None

    def list_markdown_files(self) -> List[str]:
        """All markdown files below the root, sorted."""
        files = []
        for candidate in self._root.rglob("*"):
            relative = candidate.relative_to(self._root)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if candidate.is_file() and candidate.suffix.lower() in MARKDOWN_SUFFIXES:
                files.append(relative.as_posix())

        files.sort()
        logger.debug(f"Found {len(files)} markdown files in {self._root}")
        return files
