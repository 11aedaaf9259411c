"""
Service-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from admissions.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ApplicationStage", resource_id=42, scope_id=7)
    raise ValidationError("Invalid stage status", details={"status": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist within the given scope.

    Used for BOTH genuinely missing rows AND rows that exist but belong to a
    different application (a stage id paired with the wrong application id).

    Args:
        resource: Human-readable model name (e.g. "Application", "ApplicationStage").
        resource_id: The PK that was looked up.
        scope_id: Optional owning id that was enforced (the application id).
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        scope_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.scope_id = scope_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if scope_id is not None:
            msg += f" for application {scope_id}"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Raised before any write, so no partial state exists when it surfaces.
    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

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
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class WorkflowIntegrityError(Exception):
    """Raised when stored workflow state contradicts the stage catalogue.

    Not a client error and never retried: it means the template registry or
    the storage layer is broken. Maps to HTTP 500.
    """
