"""
Domain exception hierarchy.

Services raise these; the application factory registers one handler per
type so every blueprint gets the same HTTP status codes and error body.

Usage:
    from qssun_reports.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Report", resource_id=42)
    raise ValidationError("Previous stages must be completed first",
                          details={"stage": "concreteWorks"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Report", "User").
        resource_id: The key that was looked up. Included in the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Distinct from HTTP 400 (malformed input, caught in blueprints). Stage
    gating and missing workflow documents land here. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for the API response.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class StateConflictError(Exception):
    """Raised when an action is not allowed from the entity's current status.

    Maps to HTTP 409.
    """

    def __init__(self, message: str, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the acting user lacks the role or flag an action needs. HTTP 403."""


class AuthenticationError(Exception):
    """Raised when credentials are wrong. HTTP 401."""
