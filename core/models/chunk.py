"""SculptEmbed Chunk Domain Model - Represents an embeddable slice of a note.

This module contains the Chunk domain model, the unit of embedding produced by
a preprocessor from a file's content, and ProcessedContent, the normalized
form of a whole file that chunking starts from.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from ..types import ChunkIndex, ContentHash
from ..exceptions import ValidationError


@dataclass(frozen=True)
class Chunk:
    """Domain model representing one hash-addressable chunk of a file.

    Chunks are produced fresh each time a file is queued for embedding and are
    never mutated. The index is stable across re-chunking as long as the
    content before it is unchanged.

    Attributes:
        index: 0-based position within the parent file
        text: The chunk's textual content
        hash: Content hash of ``text``
        heading_path: Ordered enclosing section headings
        length: Character length of ``text``
    """

    index: ChunkIndex
    text: str
    hash: ContentHash
    heading_path: List[str] = field(default_factory=list)
    length: int = 0

    def __post_init__(self):
        """Validate chunk model after initialization."""
        if self.index < 0:
            raise ValidationError("index", self.index, "Chunk index cannot be negative")

        if not self.hash:
            raise ValidationError("hash", self.hash, "Chunk hash cannot be empty")

        if self.length < 0:
            raise ValidationError("length", self.length, "Chunk length cannot be negative")

    @property
    def section_title(self) -> Optional[str]:
        """Heading trail joined for display, or None at the top of a file."""
        if not self.heading_path:
            return None
        return " › ".join(self.heading_path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        """Create a Chunk from a dictionary (``headingPath`` spelling accepted)."""
        try:
            text = data.get("text", "")
            heading_path = data.get("heading_path", data.get("headingPath")) or []
            return cls(
                index=ChunkIndex(int(data["index"])),
                text=text,
                hash=ContentHash(str(data["hash"])),
                heading_path=list(heading_path),
                length=int(data.get("length", len(text))),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ValidationError("data", data, f"Invalid chunk data: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert Chunk to dictionary."""
        return {
            "index": self.index,
            "text": self.text,
            "hash": self.hash,
            "heading_path": list(self.heading_path),
            "length": self.length,
        }

    def __repr__(self) -> str:
        return f"Chunk(index={self.index}, hash={self.hash!r}, length={self.length})"


@dataclass(frozen=True)
class ProcessedContent:
    """Normalized content of a whole file, ready for chunking.

    Attributes:
        content: Cleaned text used for hashing and fallback chunking
        hash: Content hash of ``content``
        length: Character length of ``content``
        excerpt: Short leading excerpt
        source: Structure-preserving text (front matter stripped) used for chunking
    """

    content: str
    hash: ContentHash
    length: int
    excerpt: Optional[str] = None
    source: Optional[str] = None
