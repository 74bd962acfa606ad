"""Custom exceptions for the takelog core.

Each exception carries a machine-readable error code (see
``takelog.constants.error_codes``) and an HTTP status so the API layer can
render it without knowing the individual exception types.
"""

from typing import Any

from takelog.constants.error_codes import get_error_spec
from takelog.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class TakeLogError(Exception):
    """Base exception for all takelog errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    endpoint=spec.get("suggested_endpoint"),
                    parameters=spec.get("parameters", {}),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(TakeLogError):
    """Base class for resource not found errors."""

    status_code = 404


class ProjectNotFoundError(ResourceNotFoundError):
    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        message = f"Project not found: {project_id}" if project_id else self.message
        location = ErrorLocation(project_id=project_id) if project_id else None
        super().__init__(message, location=location)


class TakeNotFoundError(ResourceNotFoundError):
    code = "TAKE_NOT_FOUND"
    message = "Take not found"

    def __init__(self, take_id: str | None = None, project_id: str | None = None):
        message = f"Take not found: {take_id}" if take_id else self.message
        location = ErrorLocation(take_id=take_id, project_id=project_id) if take_id else None
        super().__init__(message, location=location)


class ResolutionNotFoundError(ResourceNotFoundError):
    """Pending resolution handle is unknown, expired or superseded."""

    code = "RESOLUTION_NOT_FOUND"
    message = "Pending resolution not found"

    def __init__(self, handle: str | None = None):
        message = f"Pending resolution not found: {handle}" if handle else self.message
        super().__init__(message)


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(TakeLogError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidRangeError(ValidationError):
    """Malformed range bounds."""

    code = "INVALID_RANGE"
    message = "Invalid range"

    def __init__(
        self,
        message: str | None = None,
        *,
        start: Any = None,
        end: Any = None,
        field: str | None = None,
    ):
        msg = message or self.message
        if message is None and start is not None and end is not None:
            msg = f"Invalid range: {start} to {end}"
        self.start = start
        self.end = end
        location = ErrorLocation(field=field) if field else None
        super().__init__(msg, location=location)


class InvalidNumberError(ValidationError):
    """Take or file number is not a positive integer."""

    code = "INVALID_NUMBER"
    message = "Invalid number"

    def __init__(self, value: Any = None, *, field: str | None = None):
        message = f"Invalid number for {field or 'value'}: {value!r}"
        location = ErrorLocation(field=field) if field else None
        super().__init__(message, location=location)


class UnknownCameraError(ValidationError):
    """Camera id out of bounds for the project's camera count."""

    code = "UNKNOWN_CAMERA"
    message = "Unknown camera"

    def __init__(self, camera_id: int | None = None, camera_count: int | None = None):
        message = self.message
        if camera_id is not None and camera_count is not None:
            message = f"Unknown camera {camera_id} (project has {camera_count} camera(s))"
        self.camera_id = camera_id
        self.camera_count = camera_count
        location = ErrorLocation(camera_id=camera_id) if camera_id is not None else None
        super().__init__(message, location=location)


class InvalidStrategyError(ValidationError):
    """Resolution strategy is not offered for the pending conflicts."""

    code = "INVALID_STRATEGY"
    message = "Resolution strategy not available"

    def __init__(self, strategy: str | None = None, available: list[str] | None = None):
        message = self.message
        if strategy:
            message = f"Resolution strategy not available: {strategy}"
            if available:
                message += f" (available: {', '.join(available)})"
        super().__init__(message)


class CameraConfigurationLockedError(ValidationError):
    """Camera count cannot shrink once takes reference the project."""

    code = "CAMERA_CONFIGURATION_LOCKED"
    message = "Camera configuration cannot be reduced once takes exist"

    def __init__(self, current: int | None = None, requested: int | None = None):
        message = self.message
        if current is not None and requested is not None:
            message = f"Cannot reduce camera configuration from {current} to {requested} once takes exist"
        location = ErrorLocation(field="camera_configuration")
        super().__init__(message, location=location)


# =============================================================================
# Conflict Errors (409)
# =============================================================================


class ConflictError(TakeLogError):
    """Base class for conflict errors."""

    code = "CONFLICT"
    status_code = 409


class DuplicateError(ConflictError):
    """A candidate collides with existing takes on the no-resolution path."""

    code = "DUPLICATE_TAKE"
    message = "Take collides with an existing take"

    def __init__(self, message: str | None = None, *, conflicts: Any = None):
        self.conflicts = conflicts
        super().__init__(message or self.message)


class RenumberExhaustedError(ConflictError):
    """Renumbering cannot find headroom below the configured maximum."""

    code = "RENUMBER_EXHAUSTED"
    message = "No headroom left to renumber takes"

    def __init__(self, field: str | None = None, limit: int | None = None):
        message = self.message
        if field and limit is not None:
            message = f"Renumbering {field} would exceed the maximum of {limit}"
        location = ErrorLocation(field=field) if field else None
        super().__init__(message, location=location)


# =============================================================================
# System Errors (500)
# =============================================================================


class PersistenceError(TakeLogError):
    """Opaque failure reported by the storage collaborator."""

    code = "PERSISTENCE_ERROR"
    status_code = 500
    message = "Storage error"


class InternalError(TakeLogError):
    code = "INTERNAL_ERROR"
    status_code = 500
    message = "Internal server error"
