"""Field CRM Exception Hierarchy.

Provides structured error handling with context preservation
and HTTP status code mapping for the API layer.
"""

from __future__ import annotations

from typing import Any


class FieldCRMError(Exception):
    """Base exception for all Field CRM errors.

    Carries an error code and HTTP status so the API layer can render
    any subclass without knowing about it.
    """

    status_code: int = 500
    error_code: str = "FIELD_CRM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional context for debugging
            cause: Original exception if wrapping
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result

    def __str__(self) -> str:
        parts = [f"{self.error_code}: {self.message}"]
        if self.details:
            parts.append(f"details={self.details}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(FieldCRMError):
    """Persistence failed (after retries where applicable)."""

    status_code = 503
    error_code = "DATABASE_ERROR"


class RecordNotFoundError(DatabaseError):
    """Requested record not found."""

    status_code = 404
    error_code = "RECORD_NOT_FOUND"


class ConcurrencyConflictError(DatabaseError):
    """Row was modified by another writer since it was read."""

    status_code = 409
    error_code = "CONCURRENCY_CONFLICT"


# =============================================================================
# Business Logic Errors
# =============================================================================


class BusinessError(FieldCRMError):
    """Base class for business rule violations."""

    status_code = 400
    error_code = "BUSINESS_ERROR"


class ValidationError(BusinessError):
    """Transition input was malformed or not permitted."""

    error_code = "VALIDATION_ERROR"


class InvalidTransitionError(BusinessError):
    """Job is not in a state the requested transition accepts."""

    status_code = 409
    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        job_id: Any,
        current_status: str,
        target_status: str,
        allowed: tuple[str, ...] | frozenset[str] = (),
    ) -> None:
        super().__init__(
            f"Cannot move job from '{current_status}' to '{target_status}'",
            details={
                "job_id": str(job_id),
                "current_status": current_status,
                "target_status": target_status,
                "allowed_from": sorted(allowed),
            },
        )
        self.current_status = current_status
        self.target_status = target_status


class TechnicianUnavailableError(BusinessError):
    """Technician is already committed to another job."""

    status_code = 409
    error_code = "TECHNICIAN_UNAVAILABLE"


# =============================================================================
# Integration Errors
# =============================================================================


class IntegrationError(FieldCRMError):
    """Base class for external integration errors."""

    status_code = 502
    error_code = "INTEGRATION_ERROR"


class ExternalServiceDegraded(IntegrationError):
    """An optional provider (geocoder, email, SMS) is unreachable or misconfigured.

    Caught at the service boundary; a transition never fails because of it.
    """

    error_code = "EXTERNAL_SERVICE_DEGRADED"


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    exc: Exception,
    wrapper_class: type[FieldCRMError] = FieldCRMError,
    message: str | None = None,
    **details: Any,
) -> FieldCRMError:
    """Wrap a generic exception in a FieldCRMError.

    Args:
        exc: Original exception to wrap
        wrapper_class: FieldCRMError subclass to use
        message: Override message (defaults to str(exc))
        **details: Additional context details

    Returns:
        Wrapped FieldCRMError instance
    """
    return wrapper_class(
        message or str(exc),
        details=details or None,
        cause=exc,
    )
