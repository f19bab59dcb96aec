# =============================================================================
# Domain Errors
# =============================================================================
#
# Every failure the services raise derives from KnowledgeDeskError so the API
# layer can map them to HTTP status codes in one place.
#
#   ExtractionFailure ── BelowThreshold      (one file; skipped by the pipeline)
#   UnsupportedFileType                       (upload rejected, 400)
#   StoreUnavailable                          (persistence down, 500)
#   DocumentNotFound                          (delete/get on unknown id, 404)
#   RateLimited / UpstreamFailure             (initial generation call)
#   StreamInterrupted                         (stream failed after it started)
# =============================================================================

from __future__ import annotations


class KnowledgeDeskError(Exception):
    """Base class for all service-level errors."""


class ExtractionFailure(KnowledgeDeskError):
    """A file's text could not be produced."""

    def __init__(self, filename: str, reason: str = "no text extracted") -> None:
        super().__init__(f"Failed to extract text from '{filename}': {reason}")
        self.filename = filename
        self.reason = reason


class BelowThreshold(ExtractionFailure):
    """Extracted text is not longer than the acceptance threshold."""

    def __init__(self, filename: str, length: int, threshold: int) -> None:
        super().__init__(
            filename,
            f"extracted {length} characters, need more than {threshold}",
        )
        self.length = length
        self.threshold = threshold


class UnsupportedFileType(KnowledgeDeskError):
    def __init__(self, filename: str) -> None:
        super().__init__(f"Unsupported file type: '{filename}'")
        self.filename = filename


class StoreUnavailable(KnowledgeDeskError):
    """The knowledge store could not be reached."""


class DocumentNotFound(KnowledgeDeskError):
    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class RateLimited(KnowledgeDeskError):
    """Upstream generator signalled throttling (HTTP 429 or equivalent)."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamFailure(KnowledgeDeskError):
    """Non-retriable failure of the initial generation call."""


class StreamInterrupted(KnowledgeDeskError):
    """The upstream token stream failed after it had started."""
