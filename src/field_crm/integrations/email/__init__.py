"""Email gateway integrations."""
from field_crm.integrations.email.base import (
    EmailGateway,
    EmailMessage,
    EmailResult,
    EmailStatus,
    MockEmailGateway,
)
from field_crm.integrations.email.factory import get_email_gateway, reset_email_gateway

__all__ = [
    "EmailGateway",
    "EmailMessage",
    "EmailResult",
    "EmailStatus",
    "MockEmailGateway",
    "get_email_gateway",
    "reset_email_gateway",
]
