"""Error codes dictionary for the merge API.

Single source of truth for every error code the pipeline can report, whether
it is worth retrying, and what the client should do about it. Used by the
exception classes and the API exception handlers to build error envelopes.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request errors (not retryable, fix the upload)
    # ==========================================================================
    "MISSING_INPUT": {
        "retryable": False,
        "suggested_fix": "Upload at least one video and exactly one music file",
    },
    "TOO_MANY_INPUTS": {
        "retryable": False,
        "suggested_fix": "Reduce the number of videos and submit again",
    },
    "FILE_TOO_LARGE": {
        "retryable": False,
        "suggested_fix": "Compress or trim the file below the size limit",
    },
    # ==========================================================================
    # Validation errors (not retryable, replace the offending file)
    # ==========================================================================
    "PROBE_FAILED": {
        "retryable": False,
        "suggested_fix": "Make sure the file is a valid, unencrypted media file",
    },
    "NO_VIDEO_STREAM": {
        "retryable": False,
        "suggested_fix": "Upload a file that contains a video track",
    },
    "NO_AUDIO_STREAM": {
        "retryable": False,
        "suggested_fix": "Upload a music file that contains an audio track",
    },
    "UNSUPPORTED_CODEC": {
        "retryable": False,
        "suggested_fix": "Convert the file to a supported codec",
    },
    "RESOLUTION_TOO_HIGH": {
        "retryable": False,
        "suggested_fix": "Downscale the video to 3840x2160 or less",
    },
    # ==========================================================================
    # Engine errors (retryable with backoff)
    # ==========================================================================
    "ENCODE_FAILED": {
        "retryable": True,
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "CONCAT_FAILED": {
        "retryable": True,
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "MUX_FAILED": {
        "retryable": True,
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "ENGINE_TIMEOUT": {
        "retryable": True,
        "suggested_fix": "Submit shorter clips or fewer videos",
        "parameters": {"delay_ms": 5000, "max_retries": 1},
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "CLEANUP_FAILED": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": True,
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "VALIDATION_ERROR": {
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
