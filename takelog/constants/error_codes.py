"""Error codes dictionary for the TakeLog API.

Single source of truth for error codes, their retryability and suggested
recovery actions. Used by exceptions and HTTP handlers to build
machine-readable error responses.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "PROJECT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/projects/{project_id}",
    },
    "TAKE_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_ids",
        "suggested_endpoint": "GET /api/projects/{project_id}/takes",
    },
    "RESOLUTION_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "The pending resolution expired or was superseded. Save the take again.",
    },
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "INVALID_RANGE": {
        "retryable": False,
        "suggested_fix": "Use positive whole numbers with start <= end.",
    },
    "INVALID_NUMBER": {
        "retryable": False,
        "suggested_fix": "Take and file numbers must be positive whole numbers.",
    },
    "UNKNOWN_CAMERA": {
        "retryable": False,
        "suggested_fix": "Camera ids are 0-based and must be below the project's camera count.",
    },
    "INVALID_STRATEGY": {
        "retryable": False,
        "suggested_fix": "Pick one of the strategies offered with the pending conflicts.",
    },
    "CAMERA_CONFIGURATION_LOCKED": {
        "retryable": False,
        "suggested_fix": "Camera count can only grow once takes exist.",
    },
    # ==========================================================================
    # Conflict errors
    # ==========================================================================
    "DUPLICATE_TAKE": {
        "retryable": False,
        "suggested_action": "save_with_resolution",
        "suggested_endpoint": "POST /api/projects/{project_id}/takes",
        "suggested_fix": "Save through the resolution workflow or pick another number.",
    },
    "RENUMBER_EXHAUSTED": {
        "retryable": False,
        "suggested_fix": "Numbers would exceed the allowed maximum. Overwrite or cancel instead.",
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "PERSISTENCE_ERROR": {
        "retryable": True,
    },
    "INTERNAL_ERROR": {
        "retryable": True,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    return get_error_spec(code).get("retryable", False)
