"""Error codes dictionary for the composition engine.

This is the single source of truth for all error codes, their retryability,
and a suggested fix for operators. Used by exceptions to produce
machine-readable failure payloads.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Input errors (not retryable, fix input)
    # ==========================================================================
    "SEGMENT_FORMAT_INVALID": {
        "retryable": False,
        "suggested_fix": "Each segment needs 1-2 lines of at most 16 characters",
    },
    "EMPTY_SEGMENTS": {
        "retryable": False,
        "suggested_fix": "Provide at least one subtitle segment",
    },
    "NO_SENTENCES": {
        "retryable": False,
        "suggested_fix": "Check that the transcript covers the clip time range",
    },
    "INVALID_TIME_RANGE": {
        "retryable": False,
        "suggested_fix": "Segment start time must not be after its end time",
    },
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "SOURCE_MEDIA_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Upload the clip video before composing subtitles",
    },
    "WORKSPACE_UNAVAILABLE": {
        "retryable": True,
    },
    "MEDIA_PROBE_FAILED": {
        "retryable": False,
        "suggested_fix": "The source file is not a readable video",
    },
    # ==========================================================================
    # Process errors
    # ==========================================================================
    "RENDER_PROCESS_FAILED": {
        "retryable": True,
        "suggested_fix": "Inspect diagnostic_tail for the encoder error",
    },
    # ==========================================================================
    # Transport errors
    # ==========================================================================
    "STORAGE_TRANSPORT_FAILED": {
        "retryable": True,
    },
    # ==========================================================================
    # Cancellation
    # ==========================================================================
    "RENDER_CANCELLED": {
        "retryable": False,
        "suggested_fix": "Raise COMPOSE_TIMEOUT_SECONDS if long clips time out",
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested fix
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
