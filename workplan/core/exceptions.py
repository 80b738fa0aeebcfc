"""
Service-layer exception hierarchy.

Services raise these types; blueprints register handlers against them
once and map them to consistent HTTP status codes.

Usage:
    from workplan.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Program", resource_id=42)
    raise ValidationError("deadline exceeds parent deadline", details={"deadline": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Program", "Request").
        resource_id: The key that was looked up.
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

    Distinct from HTTP 400 (malformed input, caught in blueprint): the data
    was well-formed but violated a rule such as parent linkage or deadline
    bounds. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a record.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field whose current value blocks the operation.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} {field} is already {value!r}")


class PermissionDeniedError(Exception):
    """Raised when the acting employee lacks the approver role. Maps to HTTP 403."""

    def __init__(self, actor_id: int | None, action: str) -> None:
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Employee id={actor_id} is not allowed to {action}")


class MaterializationError(Exception):
    """Raised while applying an accepted snapshot.

    Never leaves the approval workflow: the Request is rejected in place
    and carries this message as its response.
    """
