"""Error taxonomy for the opportunity engine.

Every expected, user-actionable outcome is an ``EngineError`` subclass that
carries enough context for the presentation layer to render a specific
message. ``RemoteUnavailable`` is the only class a caller should retry.
"""

from typing import Any


class EngineError(Exception):
    """Base class for engine errors.

    Attributes:
        code: Stable machine-readable identifier, also used on the wire.
        status_code: HTTP status the API layer responds with.
        retryable: Whether the caller may retry with backoff.
    """

    code = "engine_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error response."""
        return {"error": self.code, "detail": self.message, **self.context}


class ValidationError(EngineError):
    code = "validation_error"
    status_code = 422


class CapacityExceeded(EngineError):
    code = "capacity_exceeded"
    status_code = 409


class AlreadyRegistered(EngineError):
    code = "already_registered"
    status_code = 409


class NotRegistered(EngineError):
    code = "not_registered"
    status_code = 409


class NotApproved(EngineError):
    code = "not_approved"
    status_code = 409


class WindowClosed(EngineError):
    """Unregistering is blocked this close to the event start."""

    code = "window_closed"
    status_code = 409

    def __init__(self, hours_remaining: float, window_hours: float):
        super().__init__(
            f"Cannot unregister within {window_hours:g} hours of the event",
            hours_remaining=round(hours_remaining, 2),
            window_hours=window_hours,
        )
        self.hours_remaining = hours_remaining
        self.window_hours = window_hours


class PermissionDenied(EngineError):
    code = "permission_denied"
    status_code = 403


class NotFound(EngineError):
    code = "not_found"
    status_code = 404


class RemoteUnavailable(EngineError):
    """The persistent store could not be reached or failed server-side."""

    code = "remote_unavailable"
    status_code = 503
    retryable = True


ERRORS_BY_CODE: dict[str, type[EngineError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        CapacityExceeded,
        AlreadyRegistered,
        NotRegistered,
        NotApproved,
        PermissionDenied,
        NotFound,
    )
}
