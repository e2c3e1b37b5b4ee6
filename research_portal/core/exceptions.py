"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere (see utils/errors.py).

Usage:
    from research_portal.core.exceptions import NotFoundError, InvalidTransition

    raise NotFoundError(resource="Application", resource_id=42)
    raise InvalidTransition("draft", "approved")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Application").
        resource_id: The PK that was looked up.
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
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InvalidTransition(Exception):
    """Raised when a status change is not reachable from the current status.

    Also raised when the target is reachable but a milestone precondition
    fails (e.g. approving an application that was never submitted).
    """

    def __init__(self, from_status: str, to_status: str, reason: str | None = None) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Cannot move application from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class Forbidden(Exception):
    """Raised when the acting role lacks full access to the navigation item
    guarding the requested action."""

    def __init__(self, role: str | None, navigation_item: str, action: str | None = None) -> None:
        self.role = role
        self.navigation_item = navigation_item
        self.action = action
        msg = f"Role {role!r} is not allowed to"
        msg += f" {action}" if action else " modify"
        msg += f" ({navigation_item})"
        super().__init__(msg)


class ConcurrentModification(Exception):
    """Raised when the application's status changed between read and write.

    The caller should re-fetch and may retry once.
    """

    def __init__(
        self,
        application_id: int,
        expected_status: str | None,
        actual_status: str | None = None,
    ) -> None:
        self.application_id = application_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        msg = f"Application id={application_id} was modified concurrently (expected status '{expected_status}'"
        if actual_status is not None:
            msg += f", found '{actual_status}'"
        msg += ")"
        super().__init__(msg)
