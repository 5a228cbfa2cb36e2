"""
Pipeline-wide exception hierarchy.

Services raise these types; the application registers one handler per type
(see ``montage_app.create_app``) so every blueprint answers with the same
HTTP status codes.

Usage:
    from montage_app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Montage", resource_id=42)
    raise ValidationError("Unknown stage", details={"status": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the viewer's scope.

    Used for BOTH genuinely missing records AND montages outside the viewer's
    role scope; a 403 would confirm the montage exists, a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Montage", "ChecklistItem").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
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

    Maps to HTTP 422.

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

