"""Tests for markdown preprocessing and chunking."""

import pytest

from sculptembed.preprocessor import MAX_CHARS, MarkdownPreprocessor, generate_hash

SENTENCE = "Lorem ipsum dolor sit amet. "


@pytest.fixture
def preprocessor():
    return MarkdownPreprocessor()


def long_paragraph(repeat: int = 90) -> str:
    return (SENTENCE * repeat).strip()


class TestProcess:

    def test_short_content_returns_none(self, preprocessor):
        assert preprocessor.process("Too short", "Short.md") is None

    def test_front_matter_stripped(self, preprocessor):
        body = "Body text that is long enough to embed. " * 5
        processed = preprocessor.process(f"---\ntitle: Secret\ntags: [a]\n---\n{body}", "Note.md")
        assert processed is not None
        assert "title: Secret" not in processed.content
        assert "title: Secret" not in processed.source
        assert processed.content.startswith("Body text")

    def test_links_and_markup_cleaned(self, preprocessor):
        content = "# Heading\n\n" + (
            "See [[Other Page|the other page]] and [docs](https://example.com) "
            "plus `inline code` and ![[image.png]]. "
        ) * 3
        processed = preprocessor.process(content, "Links.md")
        assert "the other page" in processed.content
        assert "[[" not in processed.content
        assert "](https" not in processed.content
        assert "`" not in processed.content
        assert "image.png" not in processed.content
        assert "#" not in processed.content

    def test_hash_and_length(self, preprocessor):
        processed = preprocessor.process("Words " * 40, "Words.md")
        assert processed.hash == generate_hash(processed.content)
        assert processed.length == len(processed.content)
        assert processed.excerpt == processed.content[:240]

    def test_crlf_normalized(self, preprocessor):
        processed = preprocessor.process("Line one is here.\r\n\r\n" * 10, "Windows.md")
        assert "\r" not in processed.source


class TestChunking:

    def test_small_note_is_one_chunk_with_heading(self, preprocessor):
        chunks = preprocessor.chunk_content_with_hashes("", "# Intro\n\nFirst paragraph.\n\nSecond paragraph.")
        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.index == 0
        assert chunk.heading_path == ["Intro"]
        assert chunk.text == "First paragraph.\n\nSecond paragraph."
        assert chunk.hash == generate_hash(chunk.text)
        assert chunk.length == len(chunk.text)

    def test_heading_trails_follow_nesting(self, preprocessor):
        source = (
            f"# A\n\n{long_paragraph()}\n\n"
            f"## B\n\n{long_paragraph(91)}\n\n"
            f"# C\n\n{long_paragraph(92)}"
        )
        chunks = preprocessor.chunk_content_with_hashes("", source)
        assert [chunk.heading_path for chunk in chunks] == [["A"], ["A", "B"], ["C"]]
        assert [chunk.index for chunk in chunks] == [0, 1, 2]

    def test_long_paragraph_split_with_overlap(self, preprocessor):
        chunks = preprocessor.chunk_content_with_hashes("", long_paragraph(400))
        assert len(chunks) > 1
        assert all(len(chunk.text) <= MAX_CHARS for chunk in chunks)
        # consecutive pieces share text
        assert chunks[0].text[-100:] in chunks[1].text

    def test_list_markers_removed(self, preprocessor):
        chunks = preprocessor.chunk_content_with_hashes("", "- first item\n- second item\n1. third")
        assert chunks[0].text == "first item second item third"

    def test_hashes_are_stable(self, preprocessor):
        source = f"# A\n\n{long_paragraph()}\n\n# B\n\n{long_paragraph(95)}"
        first = [chunk.hash for chunk in preprocessor.chunk_content_with_hashes("", source)]
        second = [chunk.hash for chunk in preprocessor.chunk_content_with_hashes("", source)]
        assert first == second
        assert len(set(first)) == len(first)

    def test_falls_back_to_content_when_source_empty(self, preprocessor):
        assert preprocessor.chunk_content_with_hashes("", "   ") == []

    def test_chunk_content_returns_texts(self, preprocessor):
        assert preprocessor.chunk_content("", "Just one paragraph.") == ["Just one paragraph."]


class TestGenerateHash:

    def test_deterministic_base36(self):
        value = generate_hash("hello")
        assert value == generate_hash("hello")
        assert value.isalnum() and value == value.lower()

    def test_differs_by_content(self):
        assert generate_hash("hello") != generate_hash("hello!")

    def test_empty_string_is_offset_basis(self):
        assert int(generate_hash(""), 36) == 2166136261

    def test_fits_in_32_bits(self):
        assert int(generate_hash("x" * 1000), 36) < 2 ** 32
