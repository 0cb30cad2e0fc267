"""Custom exceptions for the clipcaption engine.

Every failure the composition engine can surface belongs to exactly one
ErrorKind, so callers can match on ``error.kind`` instead of walking the
class hierarchy.
"""

from enum import Enum
from typing import Any

from clipcaption.constants.error_codes import get_error_spec, is_retryable


class ErrorKind(Enum):
    """Failure taxonomy."""

    INPUT = "input"
    RESOURCE = "resource"
    PROCESS = "process"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"


class ClipCaptionError(Exception):
    """Base exception for all clipcaption errors."""

    code: str = "INTERNAL_ERROR"
    kind: ErrorKind = ErrorKind.PROCESS
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.code)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for task results and status records."""
        spec = get_error_spec(self.code)
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "retryable": spec.get("retryable", False),
            "suggested_fix": spec.get("suggested_fix"),
        }


# =============================================================================
# Input Errors
# =============================================================================


class InputError(ClipCaptionError):
    """Base class for errors caused by the caller's input."""

    kind = ErrorKind.INPUT


class SegmentFormatError(InputError):
    """Raw or timed subtitle segment violates the line rules."""

    code = "SEGMENT_FORMAT_INVALID"
    message = "Invalid subtitle segment"

    def __init__(
        self,
        message: str | None = None,
        *,
        segment_index: int | None = None,
        line_index: int | None = None,
    ):
        self.segment_index = segment_index
        self.line_index = line_index
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["segment_index"] = self.segment_index
        data["line_index"] = self.line_index
        return data


class EmptySegmentsError(InputError):
    """No subtitle segments were given."""

    code = "EMPTY_SEGMENTS"
    message = "Segments cannot be empty"


class NoSentencesError(InputError):
    """No transcript sentence intersects the clip range."""

    code = "NO_SENTENCES"
    message = "No sentences found for clip time range"

    def __init__(self, clip_start: float | None = None, clip_end: float | None = None):
        message = self.message
        if clip_start is not None and clip_end is not None:
            message = f"No sentences found for clip time range {clip_start}s to {clip_end}s"
        super().__init__(message)


class InvalidTimeRangeError(InputError):
    """Timed segment has start after end or is out of order."""

    code = "INVALID_TIME_RANGE"
    message = "Invalid time range"


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(ClipCaptionError):
    """Base class for missing or unusable resources."""

    kind = ErrorKind.RESOURCE


class SourceMediaNotFoundError(ResourceError):
    """Source media is missing from storage."""

    code = "SOURCE_MEDIA_NOT_FOUND"
    message = "Source media not found"

    def __init__(self, ref: str | None = None):
        self.ref = ref
        super().__init__(f"Source media not found: {ref}" if ref else None)


class WorkspaceError(ResourceError):
    """Scratch workspace could not be allocated."""

    code = "WORKSPACE_UNAVAILABLE"
    message = "Failed to allocate scratch workspace"


class MediaProbeError(ResourceError):
    """ffprobe could not read the media."""

    code = "MEDIA_PROBE_FAILED"
    message = "Failed to probe media"


# =============================================================================
# Process Errors
# =============================================================================


class RenderProcessError(ClipCaptionError):
    """The render engine exited non-zero or could not be spawned."""

    code = "RENDER_PROCESS_FAILED"
    kind = ErrorKind.PROCESS
    message = "Render process failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        diagnostic_tail: list[str] | None = None,
        returncode: int | None = None,
    ):
        self.diagnostic_tail = list(diagnostic_tail or [])
        self.returncode = returncode
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["diagnostic_tail"] = self.diagnostic_tail
        data["returncode"] = self.returncode
        return data


# =============================================================================
# Transport Errors
# =============================================================================


class StorageTransportError(ClipCaptionError):
    """Download or upload stream failed."""

    code = "STORAGE_TRANSPORT_FAILED"
    kind = ErrorKind.TRANSPORT
    message = "Storage transfer failed"


# =============================================================================
# Cancellation
# =============================================================================


class RenderCancelledError(ClipCaptionError):
    """The job was cancelled or timed out."""

    code = "RENDER_CANCELLED"
    kind = ErrorKind.CANCELLED
    message = "Cancelled"
