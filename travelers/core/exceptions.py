"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from travelers.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Traveler", resource_id="0f3c...")
    raise ValidationError('value "abc" is not a number', details={"value": "abc"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Traveler", "FormTemplate").
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
    """Raised when input fails a data or business-rule check.

    A rejected write never reaches the database, so no counters or
    touched inputs change when this is raised.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
        status: HTTP-equivalent severity, 400 unless a subclass says otherwise.
    """

    status = 400

    def __init__(self, message: str, details: dict | None = None, status: int | None = None) -> None:
        self.details = details or {}
        if status is not None:
            self.status = status
        super().__init__(message)


class UnknownStatusError(ValidationError):
    """Raised for a status value outside the fixed status vocabulary."""

    def __init__(self, value) -> None:
        self.value = value
        super().__init__(f"unknown traveler status {value!r}", details={"status": repr(value)})


class InvalidTransition(ValidationError):
    """Raised when a status change is not in the transition table.

    Maps to HTTP 409 (the traveler is in the wrong state for the request).
    """

    status = 409

    def __init__(self, from_status, to_status) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"invalid status transition {from_status} -> {to_status}",
            details={"from": from_status, "to": to_status},
        )


class CascadeLookupError(Exception):
    """Raised inside the binder cascade when owning binders cannot be located.

    Never reaches the caller that wrote the traveler; the cascade logs it
    and gives up on that attempt.
    """

    def __init__(self, traveler_id: str, cause: Exception | None = None) -> None:
        self.traveler_id = traveler_id
        self.cause = cause
        msg = f"cannot find binders for traveler {traveler_id}"
        if cause is not None:
            msg += f", error: {cause}"
        super().__init__(msg)
