"""
Application exception hierarchy.

Services raise these; blueprints map them to HTTP status codes once:

    NotFoundError         -> 404
    ValidationError       -> 422
    ConflictError         -> 409
    VersionConflictError  -> 409 (carries the stored version)

Usage:
    from hse_kpi.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Kpi", resource_id=kpi_id)
    raise ValidationError("Unknown status", details={"status": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    A missing KpiValue is NOT an error (an empty cell is a normal state);
    this is raised for missing catalog entries such as a Kpi or Period.

    Args:
        resource: Human-readable model name (e.g. "Kpi", "KpiPeriod").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Cell text is never rejected (non-numeric text is simply stored as
    text); this covers things like an unknown status or period type.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Args:
        resource: Model name.
        field: The unique field (or natural key) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class VersionConflictError(ConflictError):
    """Raised when a write's expected version does not match the stored one.

    Nothing is written. The caller should reload the cell and retry or
    ask the user to merge.

    Args:
        resource: Model name.
        resource_id: Natural or surrogate key of the record.
        expected_version: Version the caller based its edit on.
        current_version: Version currently stored (0 when no record exists).
    """

    def __init__(
        self,
        resource: str,
        resource_id: str,
        expected_version: int,
        current_version: int,
    ) -> None:
        self.resource = resource
        self.field = "version"
        self.value = str(expected_version)
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.current_version = current_version
        Exception.__init__(
            self,
            f"{resource} {resource_id} is at version {current_version}, "
            f"expected {expected_version}",
        )
