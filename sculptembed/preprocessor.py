"""Markdown preprocessing: cleanup, hashing and heading-aware chunking.

Turns a note's raw markdown into ``ProcessedContent`` and a list of
hash-stable ``Chunk`` objects. Chunks are assembled from paragraphs and keep
the trail of headings they appear under, so search results can show where in
a note a match came from.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from loguru import logger

from core.models import Chunk, ProcessedContent
from core.types import ChunkIndex, ContentHash

MIN_CONTENT_LENGTH = 80
HARD_TRUNCATE_LENGTH = 1_200_000

TARGET_TOKEN_LENGTH = 600
AVG_CHARS_PER_TOKEN = 4
TARGET_CHARS = TARGET_TOKEN_LENGTH * AVG_CHARS_PER_TOKEN
MAX_CHARS = round(TARGET_CHARS * 1.35)
MIN_CHARS = round(TARGET_CHARS * 0.5)
OVERLAP_RATIO = 0.2
MIN_OVERLAP_CHARS = 120
TINY_CHUNK_CHARS = 180
EXCERPT_CHARS = 240

_FNV_OFFSET = 2166136261
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

_IMAGE_EMBED_RE = re.compile(r"!\[\[.*?\]\]")
_IMAGE_LINK_RE = re.compile(r"!\[[^\]]*?\]\([^)]*?\)")
_WIKI_ALIAS_RE = re.compile(r"\[\[([^|\]]+)\|([^\]]+)\]\]")
_WIKI_LINK_RE = re.compile(r"\[\[([^\]]+)\]\]")
_MD_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_CODE_FENCE_RE = re.compile(r"```[^\n]*\n([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_RULE_RE = re.compile(r"^(?:-{3,}|_{3,}|\*{3,})$", re.MULTILINE)
_HEADING_MARKER_RE = re.compile(r"^\s*#{1,6}\s+", re.MULTILINE)

_HEADING_LINE_RE = re.compile(r"^\s{0,3}(#{1,6})\s+(.+)$")
_BULLET_LINE_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_ORDERED_LINE_RE = re.compile(r"^\s*\d+\.\s+(.*)$")

_INLINE_FORMATTING = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"_{1,2}(.*?)_{1,2}"), r"\1"),
    (re.compile(r"~~(.*?)~~"), r"\1"),
    (re.compile(r"<[^>]+>"), " "),
    (re.compile(r"\|\|"), " "),
)

_SENTENCE_END_RE = re.compile(r"[.!?]\s")


@dataclass
class _Block:
    text: str
    heading_trail: List[str] = field(default_factory=list)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_hash(content: str) -> ContentHash:
    """Fast, non-cryptographic FNV-style hash of ``content`` in base 36.

    Operates on UTF-16 code units so hashes stay identical to vectors written
    by other clients of the same store.
    """
    value = _FNV_OFFSET
    encoded = content.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(encoded), 2):
        value ^= encoded[i] | (encoded[i + 1] << 8)
        value = (value + (value << 1) + (value << 4) + (value << 7) + (value << 8) + (value << 24)) & 0xFFFFFFFF
    return ContentHash(_to_base36(value))


def _normalize_line_endings(content: str) -> str:
    return re.sub(r"\r\n?", "\n", content)


def _strip_front_matter(content: str) -> str:
    if content.startswith("---\n") or content.startswith("---\r\n"):
        closing = content.find("\n---", 3)
        if closing != -1:
            return content[closing + 4:]
    return content


def _normalize_whitespace(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    text = text.replace(" \n", "\n")
    text = re.sub(r"\n[ \t]+", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text)


def _replace_links(text: str) -> str:
    text = _IMAGE_EMBED_RE.sub(" ", text)
    text = _IMAGE_LINK_RE.sub(" ", text)
    text = _WIKI_ALIAS_RE.sub(r"\2", text)
    text = _WIKI_LINK_RE.sub(r"\1", text)
    return _MD_LINK_RE.sub(r"\1", text)


def _clean_content(content: str) -> str:
    """Strip markdown syntax while keeping paragraph breaks."""
    result = _replace_links(content)
    result = _CODE_FENCE_RE.sub(lambda m: _normalize_whitespace(m.group(1)), result)
    result = _INLINE_CODE_RE.sub(r"\1", result)
    result = _RULE_RE.sub("", result)
    result = _HEADING_MARKER_RE.sub("", result)

    result = result.replace("\r", "")
    result = re.sub(r"[ \t]+\n", "\n", result)
    result = re.sub(r"\n{3,}", "\n\n", result)
    return _normalize_whitespace(result).strip()


def _clean_paragraph(paragraph: str) -> str:
    if not paragraph:
        return ""
    result = _replace_links(paragraph)
    result = _INLINE_CODE_RE.sub(r"\1", result)
    for pattern, replacement in _INLINE_FORMATTING:
        result = pattern.sub(replacement, result)
    return re.sub(r"\s+", " ", result).strip()


def _clean_heading(heading: str) -> str:
    return re.sub(r":+\s*$", "", _clean_paragraph(heading))


def _smart_truncate(text: str, max_length: int) -> str:
    """Cut ``text`` near ``max_length``, preferring a sentence or word boundary."""
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    boundary = -1
    for match in _SENTENCE_END_RE.finditer(truncated):
        boundary = match.start() + 1
    if boundary > max_length * 0.8:
        return truncated[:boundary].strip()

    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.7:
        return truncated[:last_space].strip()

    return truncated.strip()


def _find_forward_boundary(text: str, index: int) -> int:
    match = _SENTENCE_END_RE.search(text[index:index + 200])
    if not match:
        return index
    return index + match.start() + 1


class MarkdownPreprocessor:
    """Prepares markdown notes for embedding.

    ``process`` normalizes a whole note and returns None when there is too
    little text to embed; ``chunk_content_with_hashes`` splits the note into
    ~2.4k character chunks with stable per-chunk hashes.
    """

    def __init__(
        self,
        min_content_length: int = MIN_CONTENT_LENGTH,
        target_chars: int = TARGET_CHARS,
    ):
        self._min_content_length = min_content_length
        self._target_chars = target_chars
        self._max_chars = round(target_chars * 1.35)
        self._min_chars = round(target_chars * 0.5)

    def process(self, content: str, path: Optional[str] = None) -> Optional[ProcessedContent]:
        """Normalize a note for embedding.

        Args:
            content: Raw file content
            path: Source path (used for logging only)

        Returns:
            ProcessedContent, or None when the cleaned text is too short
        """
        normalized = _normalize_line_endings(_strip_front_matter(content))
        cleaned = _clean_content(normalized)

        if len(cleaned) < self._min_content_length:
            logger.debug(f"Content too short to embed ({len(cleaned)} chars): {path}")
            return None

        if len(cleaned) > HARD_TRUNCATE_LENGTH:
            logger.warning(f"Truncating {path} from {len(cleaned)} to ~{HARD_TRUNCATE_LENGTH} chars")
            cleaned = _smart_truncate(cleaned, HARD_TRUNCATE_LENGTH)

        return ProcessedContent(
            content=cleaned,
            hash=generate_hash(cleaned),
            length=len(cleaned),
            excerpt=cleaned[:EXCERPT_CHARS],
            source=normalized,
        )

    def chunk_content(self, content: str, source: Optional[str] = None) -> List[str]:
        return [chunk.text for chunk in self.chunk_content_with_hashes(content, source)]

    def chunk_content_with_hashes(self, content: str, source: Optional[str] = None) -> List[Chunk]:
        """Split content into chunks with stable hashes and heading trails.

        Args:
            content: Cleaned content (fallback when ``source`` has no paragraphs)
            source: Structure-preserving text to chunk

        Returns:
            Chunks indexed from 0 in document order
        """
        reference = (source if source is not None else content).strip()
        if not reference:
            return []

        paragraphs = self._build_paragraphs(reference)
        if not paragraphs:
            paragraphs = [_Block(content.strip())]

        chunks: List[Chunk] = []
        for block in self._assemble_chunks(paragraphs):
            text = block.text.strip()
            if not text:
                continue
            chunks.append(
                Chunk(
                    index=ChunkIndex(len(chunks)),
                    text=text,
                    hash=generate_hash(text),
                    heading_path=[heading for heading in block.heading_trail if heading],
                    length=len(text),
                )
            )
        return chunks

    def _build_paragraphs(self, source: str) -> List[_Block]:
        paragraphs: List[_Block] = []
        buffer: List[str] = []
        heading_trail: List[Tuple[int, str]] = []

        def flush() -> None:
            if not buffer:
                return
            cleaned = _clean_paragraph(" ".join(buffer).strip())
            buffer.clear()
            if cleaned:
                paragraphs.append(_Block(cleaned, [text for _, text in heading_trail]))

        for raw_line in source.split("\n"):
            if not raw_line.strip():
                flush()
                continue

            heading = _HEADING_LINE_RE.match(raw_line)
            if heading:
                flush()
                level = len(heading.group(1))
                heading_trail = [entry for entry in heading_trail if entry[0] < level]
                heading_trail.append((level, _clean_heading(heading.group(2))))
                continue

            item = _BULLET_LINE_RE.match(raw_line) or _ORDERED_LINE_RE.match(raw_line)
            buffer.append(item.group(1) if item else raw_line)

        flush()
        return paragraphs

    def _assemble_chunks(self, paragraphs: List[_Block]) -> List[_Block]:
        chunks: List[_Block] = []
        current_text = ""
        current_heading: List[str] = []

        def push(text: str, trail: List[str]) -> None:
            trimmed = text.strip()
            if not trimmed:
                return
            if len(trimmed) > self._max_chars:
                chunks.extend(_Block(piece, trail) for piece in self._split_with_overlap(trimmed))
            else:
                chunks.append(_Block(trimmed, trail))

        last = len(paragraphs) - 1
        for idx, paragraph in enumerate(paragraphs):
            addition = paragraph.text
            if not addition:
                continue

            if not current_text:
                current_text = addition
                current_heading = paragraph.heading_trail
                if idx == last:
                    push(current_text, current_heading)
                    current_text = ""
                continue

            candidate = f"{current_text}\n\n{addition}"
            if len(candidate) <= self._max_chars:
                current_text = candidate
            elif len(current_text) >= self._min_chars:
                push(current_text, current_heading)
                current_text = addition
                current_heading = paragraph.heading_trail
            else:
                # Too small to stand alone; merge with the next paragraph and split.
                trail = paragraph.heading_trail or current_heading
                for piece in self._split_with_overlap(candidate):
                    push(piece, trail)
                current_text = ""

            has_more = idx < last
            if current_text and (len(current_text) >= self._target_chars or not has_more):
                push(current_text, current_heading)
                current_text = ""

        if current_text:
            push(current_text, current_heading)

        return self._merge_tiny_trailing_chunks(chunks)

    def _split_with_overlap(self, text: str) -> List[str]:
        if len(text) <= self._max_chars:
            return [text.strip()]

        target = self._target_chars
        overlap = max(MIN_OVERLAP_CHARS, int(target * OVERLAP_RATIO))
        pieces: List[str] = []
        start = 0

        while start < len(text):
            end = min(len(text), start + target)
            if end < len(text):
                boundary = _find_forward_boundary(text, end)
                if boundary > end and boundary - start <= self._max_chars:
                    end = boundary

            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)
            if end >= len(text):
                break
            start = max(end - overlap, start + 1)

        return pieces

    def _merge_tiny_trailing_chunks(self, chunks: List[_Block]) -> List[_Block]:
        if len(chunks) <= 1:
            return chunks

        merged: List[_Block] = []
        for chunk in chunks:
            if (
                merged
                and len(chunk.text) < TINY_CHUNK_CHARS
                and len(merged[-1].text) + len(chunk.text) + 2 <= self._max_chars
            ):
                merged[-1].text = f"{merged[-1].text}\n\n{chunk.text}".strip()
                continue
            merged.append(chunk)
        return merged
