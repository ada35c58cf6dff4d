"""SculptEmbed Vector Domain Model - Represents a stored embedding.

A VectorRecord is one embedding for one chunk of one file, keyed by a
deterministic id derived from ``(namespace, path, chunk_index)`` so writes are
idempotent upserts and deletions can target exact ids.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, List

from ..types import ChunkIndex, EmbeddingVector, FilePath, Namespace, VectorId
from ..exceptions import ValidationError


@dataclass(frozen=True)
class VectorMetadata:
    """Metadata stored alongside an embedding.

    Attributes:
        namespace: Versioned provider/model/schema/dimension key
        provider: Provider id that produced the vector
        model: Normalized model id
        dimension: Vector length
        content_hash: Hash of the chunk text the vector was computed from
        title: File title (basename without extension)
        excerpt: Short display excerpt
        mtime: File modification time (ms)
        created_at: When the vector was produced (ms)
        section_title: Joined heading trail
        heading_path: Enclosing headings
        chunk_length: Character length of the chunk
        is_empty: True for the sentinel stored for files with nothing to embed
        complete: Root-only; False when some chunk of the file failed to embed
        chunk_count: Root-only; total planned chunk count of the file
    """

    namespace: Namespace
    provider: str
    model: str
    dimension: int
    content_hash: str
    title: str = ""
    excerpt: str = ""
    mtime: Optional[float] = None
    created_at: Optional[float] = None
    section_title: Optional[str] = None
    heading_path: List[str] = field(default_factory=list)
    chunk_length: Optional[int] = None
    is_empty: bool = False
    complete: Optional[bool] = None
    chunk_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorMetadata":
        """Create metadata from a dictionary, ignoring unknown keys."""
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}
        if "heading_path" in values and values["heading_path"] is None:
            values["heading_path"] = []
        try:
            return cls(**values)
        except TypeError as e:
            raise ValidationError("metadata", data, f"Invalid vector metadata: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to a JSON-serializable dictionary."""
        return {
            "namespace": self.namespace,
            "provider": self.provider,
            "model": self.model,
            "dimension": self.dimension,
            "content_hash": self.content_hash,
            "title": self.title,
            "excerpt": self.excerpt,
            "mtime": self.mtime,
            "created_at": self.created_at,
            "section_title": self.section_title,
            "heading_path": list(self.heading_path),
            "chunk_length": self.chunk_length,
            "is_empty": self.is_empty,
            "complete": self.complete,
            "chunk_count": self.chunk_count,
        }


@dataclass(frozen=True)
class VectorRecord:
    """Domain model for a stored embedding plus metadata.

    Attributes:
        id: Deterministic key from ``(namespace, path, chunk_id)``
        path: Source file path
        chunk_id: The chunk's index
        embedding: Numeric vector
        metadata: Namespace, provenance and completeness metadata
    """

    id: VectorId
    path: FilePath
    chunk_id: ChunkIndex
    embedding: EmbeddingVector
    metadata: VectorMetadata

    def __post_init__(self):
        """Validate vector record after initialization."""
        if not self.id:
            raise ValidationError("id", self.id, "Vector id cannot be empty")

        if not self.path:
            raise ValidationError("path", self.path, "Path cannot be empty")

        if self.chunk_id < 0:
            raise ValidationError("chunk_id", self.chunk_id, "Chunk id cannot be negative")

    @property
    def namespace(self) -> Namespace:
        return self.metadata.namespace

    @property
    def dimension(self) -> int:
        return len(self.embedding)

    @property
    def is_root(self) -> bool:
        """True for the chunk-0 vector that carries file-level completeness."""
        return self.chunk_id == 0

    def with_metadata(self, **changes: Any) -> "VectorRecord":
        """Return a copy with metadata fields replaced."""
        return replace(self, metadata=replace(self.metadata, **changes))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorRecord":
        """Create a VectorRecord from a dictionary."""
        try:
            metadata = data.get("metadata") or {}
            if not isinstance(metadata, VectorMetadata):
                metadata = VectorMetadata.from_dict(metadata)
            return cls(
                id=VectorId(data["id"]),
                path=FilePath(data["path"]),
                chunk_id=ChunkIndex(int(data["chunk_id"])),
                embedding=[float(x) for x in data.get("embedding") or []],
                metadata=metadata,
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ValidationError("data", data, f"Invalid vector record: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert VectorRecord to dictionary."""
        return {
            "id": self.id,
            "path": self.path,
            "chunk_id": self.chunk_id,
            "embedding": list(self.embedding),
            "metadata": self.metadata.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"VectorRecord(id='{self.id}', path='{self.path}', chunk_id={self.chunk_id}, "
            f"dims={self.dimension}, complete={self.metadata.complete})"
        )
