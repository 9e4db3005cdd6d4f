from typing import Optional


class TrackerError(Exception):
    """Base for every failure an operation reports to its caller.

    ``code`` is the stable machine-readable kind; the message is safe to show
    to the user.
    """

    code = "unknown"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(TrackerError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Not authenticated"


class ValidationFailed(TrackerError, ValueError):
    code = "validation_failed"
    status_code = 422
    default_message = "Invalid input"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        fields: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.fields: dict[str, str] = dict(fields or {})
        if field:
            self.fields[field] = self.message


class NotFound(TrackerError, ValueError):
    # also raised for rows owned by someone else
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class AtomicOperationFailed(TrackerError):
    code = "atomic_operation_failed"
    status_code = 409
    default_message = "Failed to mark as paid"


class UpstreamUnavailable(TrackerError):
    code = "upstream_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"


class Unknown(TrackerError):
    code = "unknown"
    status_code = 500
