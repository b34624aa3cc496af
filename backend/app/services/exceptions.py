"""Service-layer exceptions.

These exceptions are raised by engines and services and DO NOT extend
HTTPException. Routes catch them and convert them to structured HTTP
responses; each class carries the status code it maps to.

Taxonomy:
- ValidationError: malformed input (blank holder name, unknown status)
- ForbiddenError: role set does not authorize the action, never retried
- ConflictError: concurrent modification, retried by the numbering and
  disclosure services before surfacing
- NotFoundError: referenced case/document/snapshot/invitation is missing
"""

from typing import Any


class ServiceError(Exception):
    """Base class for all service-layer exceptions.

    Attributes:
        code: Machine-readable error code (e.g., "DOCUMENT_NOT_FOUND").
        message: Human-readable error message.
        details: Optional additional context.
        status_code: Suggested HTTP status code for API responses.
        is_retryable: Whether the operation can be retried.
    """

    code: str = "SERVICE_ERROR"
    status_code: int = 500
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        is_retryable: bool | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        if is_retryable is not None:
            self.is_retryable = is_retryable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "is_retryable": self.is_retryable,
        }


class NotFoundError(ServiceError):
    """Resource not found."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: str | int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"{resource} with ID {resource_id} not found", details)
        self.resource = resource
        self.resource_id = resource_id


class DocumentNotFoundError(NotFoundError):
    code = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: int) -> None:
        super().__init__("Document", document_id)


class CaseNotFoundError(NotFoundError):
    code = "CASE_NOT_FOUND"

    def __init__(self, case_id: int) -> None:
        super().__init__("Case", case_id)


class SnapshotNotFoundError(NotFoundError):
    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: int | str) -> None:
        super().__init__("Disclosure snapshot", snapshot_id)


class InvitationNotFoundError(NotFoundError):
    code = "INVITATION_NOT_FOUND"

    def __init__(self, token: str) -> None:
        # Tokens are credentials; never echo them back
        super().__init__("Invitation", "<token>")


class ValidationError(ServiceError):
    """Validation failed."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: list[dict[str, str]] | None = None,
    ) -> None:
        details = {"fields": field_errors} if field_errors else {}
        super().__init__(message, details)
        self.field_errors = field_errors or []


class InvalidHolderNameError(ValidationError):
    """Banking documents cannot be grouped without an account holder name."""

    code = "INVALID_ACCOUNT_HOLDER"

    def __init__(self) -> None:
        super().__init__(
            "Account holder name is required to number a banking document",
            field_errors=[{"field": "accountHolderName", "message": "must not be blank"}],
        )


class InvalidStatusError(ValidationError):
    """Requested document status is not a recognised value."""

    code = "INVALID_STATUS"

    def __init__(self, value: object, allowed: list[str]) -> None:
        super().__init__(
            f"'{value}' is not a valid document status",
            field_errors=[{"field": "status", "message": f"must be one of {', '.join(allowed)}"}],
        )


class ForbiddenError(ServiceError):
    """Caller's role set does not authorize this action."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, action: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"You don't have permission to {action}", details)
        self.action = action


class ConflictError(ServiceError):
    """Concurrent modification (lost lock race, duplicate number, stale read)."""

    code = "CONFLICT"
    status_code = 409
    is_retryable = True

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class ExternalServiceError(ServiceError):
    """External service (extraction model, storage) failed."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502
    is_retryable = True

    def __init__(
        self,
        service_name: str,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        is_retryable: bool = True,
    ) -> None:
        super().__init__(f"{service_name} error: {message}", details, is_retryable=is_retryable)
        self.service_name = service_name


class DatabaseError(ServiceError):
    """Database operation failed or the database is not configured."""

    code = "DATABASE_ERROR"
    status_code = 503
    is_retryable = True

    def __init__(
        self,
        message: str = "Database operation failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
