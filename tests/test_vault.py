"""Tests for the filesystem vault."""

import pytest

from core.exceptions import PreprocessingError
from sculptembed.vault import FileSystemVault


@pytest.fixture
def vault_dir(tmp_path):
    (tmp_path / "Projects").mkdir()
    (tmp_path / ".obsidian").mkdir()
    (tmp_path / "Inbox.md").write_text("# Inbox\n\nThings to do.", encoding="utf-8")
    (tmp_path / "Projects" / "Plan.markdown").write_text("Plan body", encoding="utf-8")
    (tmp_path / "Projects" / "image.png").write_bytes(b"\x89PNG")
    (tmp_path / ".obsidian" / "workspace.md").write_text("hidden", encoding="utf-8")
    return tmp_path


class TestFileSystemVault:

    def test_lists_markdown_skipping_hidden(self, vault_dir):
        vault = FileSystemVault(vault_dir)
        assert vault.list_markdown_files() == ["Inbox.md", "Projects/Plan.markdown"]

    @pytest.mark.asyncio
    async def test_read(self, vault_dir):
        vault = FileSystemVault(vault_dir)
        assert await vault.read("Projects/Plan.markdown") == "Plan body"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, vault_dir):
        vault = FileSystemVault(vault_dir)
        with pytest.raises(PreprocessingError):
            await vault.read("Nope.md")

    @pytest.mark.asyncio
    async def test_read_outside_root(self, vault_dir):
        vault = FileSystemVault(vault_dir / "Projects")
        with pytest.raises(PreprocessingError):
            await vault.read("../Inbox.md")

    def test_mtime_in_milliseconds(self, vault_dir):
        vault = FileSystemVault(vault_dir)
        expected = (vault_dir / "Inbox.md").stat().st_mtime * 1000
        assert vault.get_mtime("Inbox.md") == pytest.approx(expected)
        assert vault.get_mtime("Missing.md") is None

    def test_missing_root(self, tmp_path):
        with pytest.raises(PreprocessingError):
            FileSystemVault(tmp_path / "absent")
