"""Error types raised by the conversation core."""

from typing import Any, Optional


class MailroomError(Exception):
    """Base class for errors the HTTP boundary knows how to report."""

    status_code = 500
    error_type = "internal"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "errorType": self.error_type}


class ValidationError(MailroomError):
    """A request parameter is malformed or out of range."""

    status_code = 400
    error_type = "validation"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class InvalidCursorError(ValidationError):
    """Cursor is unknown, or does not belong to the requested filter/sort."""

    def __init__(self, cursor: Any, reason: Optional[str] = None):
        message = f"Invalid cursor: {cursor}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__("cursor", message)
        self.cursor = cursor


class NotFoundError(MailroomError):
    status_code = 404
    error_type = "not_found"

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class StoreUnavailable(MailroomError):
    """The message store (or account service) could not be reached.

    Callers may retry; the core never retries on its own.
    """

    status_code = 503
    error_type = "store_unavailable"
    retryable = True
