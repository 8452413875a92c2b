"""
Checklist engine exception hierarchy.

Services raise these types; blueprints register handlers against them
once and map them to HTTP status codes:

    NotFoundError   -> 404
    ValidationError -> 422
    ConflictError   -> 409
    StoreError      -> 500

Usage:
    from dealdesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ChecklistTask", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a task, phase or template does not exist.

    Args:
        resource: Human-readable entity name (e.g. "ChecklistTask").
        resource_id: The key that was looked up.
        deal_id: Optional deal scope, included in the message for logs.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        deal_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.deal_id = deal_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if deal_id is not None:
            msg += f" (deal={deal_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Examples: missing task title, unknown status, unsupported deal type,
    workstream outside the fixed enumeration.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write would clash with existing state.

    Covers duplicate phase names, a second instantiation of an already
    initialized deal checklist, and stale ``expected_version`` updates.

    Args:
        resource: Model name.
        field: The field that conflicts.
        value: The conflicting value.
        message: Optional override for the default message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class StoreError(Exception):
    """Opaque persistence failure raised by the task store.

    The engine never retries; the original exception is kept on
    ``__cause__`` for logging.
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        super().__init__(message or f"Task store failure during {operation}")
