"""Cross-cutting building blocks: errors, retry, logging."""

from field_crm.core.exceptions import (
    FieldCRMError,
    DatabaseError,
    RecordNotFoundError,
    ConcurrencyConflictError,
    BusinessError,
    ValidationError,
    InvalidTransitionError,
    TechnicianUnavailableError,
    IntegrationError,
    ExternalServiceDegraded,
    wrap_exception,
)
from field_crm.core.log import get_logger, setup_logging

__all__ = [
    # Exceptions
    "FieldCRMError",
    "DatabaseError",
    "RecordNotFoundError",
    "ConcurrencyConflictError",
    "BusinessError",
    "ValidationError",
    "InvalidTransitionError",
    "TechnicianUnavailableError",
    "IntegrationError",
    "ExternalServiceDegraded",
    "wrap_exception",
    # Logging
    "get_logger",
    "setup_logging",
]
