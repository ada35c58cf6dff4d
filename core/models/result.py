"""SculptEmbed Processing Result Models - Outcome of a processing run."""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from ..exceptions import EmbeddingsProviderError


@dataclass(frozen=True)
class ProcessingProgress:
    """Progress snapshot reported after each finished file."""

    current: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return self.current / self.total


@dataclass
class FailedProcessingDetail:
    """Why a file was recorded in ``failed_paths``.

    Attributes:
        code: Provider error code or local failure code (READ_ERROR, PREPROCESS_ERROR)
        message: Human-readable description
        status: HTTP status when the failure came from a provider
        retry_in_ms: Provider cooldown hint, if any
        chunk_id: Offending chunk when the failure was isolated to one chunk
        section_title: Joined heading trail of the offending chunk
        heading_path: Heading trail of the offending chunk
        signals: Content signals detected in a blocked chunk
    """

    code: str
    message: str
    status: Optional[int] = None
    retry_in_ms: Optional[int] = None
    chunk_id: Optional[int] = None
    section_title: Optional[str] = None
    heading_path: List[str] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.status is not None:
            result["status"] = self.status
        if self.retry_in_ms is not None:
            result["retry_in_ms"] = self.retry_in_ms
        if self.chunk_id is not None:
            result["chunk_id"] = self.chunk_id
        if self.section_title:
            result["section_title"] = self.section_title
        if self.heading_path:
            result["heading_path"] = list(self.heading_path)
        if self.signals:
            result["signals"] = list(self.signals)
        return result


@dataclass
class ProcessingResult:
    """Aggregate outcome of one ``process_files`` invocation.

    Attributes:
        fatal_error: Terminal provider error that halted processing, or None
        failed_paths: Files with at least one unrecoverable failure
        completed: Number of files finalized
        skipped_paths: Files skipped before any request was sent
        failed_details: First failure detail recorded per failed path
    """

    fatal_error: Optional[EmbeddingsProviderError] = None
    failed_paths: List[str] = field(default_factory=list)
    completed: int = 0
    skipped_paths: List[str] = field(default_factory=list)
    failed_details: Dict[str, FailedProcessingDetail] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.failed_paths)

    @property
    def halted(self) -> bool:
        return self.fatal_error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to a JSON-friendly dictionary."""
        fatal = None
        if self.fatal_error is not None:
            fatal = {
                "code": self.fatal_error.code.value,
                "status": self.fatal_error.status,
                "message": self.fatal_error.message,
                "retry_in_ms": self.fatal_error.retry_in_ms,
            }
        return {
            "completed": self.completed,
            "failed": self.failed,
            "failed_paths": list(self.failed_paths),
            "skipped_paths": list(self.skipped_paths),
            "fatal_error": fatal,
            "failed_details": {path: detail.to_dict() for path, detail in self.failed_details.items()},
        }
