"""Base Email Gateway Interface.

Defines the abstract interface for email gateways and a mock
implementation for development and tests.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from field_crm.core.log import get_logger

log = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class EmailStatus(str, Enum):
    """Status of an email message."""

    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class EmailMessage:
    """Email message to send."""

    to: str | list[str]
    subject: str
    body_text: str | None = None
    body_html: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    reply_to: str | None = None
    reference: str | None = None  # e.g. job id, echoed back in custom args

    def __post_init__(self):
        if isinstance(self.to, str):
            self.to = [self.to]


@dataclass
class EmailResult:
    """Result of an email send operation."""

    success: bool
    message_id: str | None = None
    status: EmailStatus = EmailStatus.UNKNOWN
    provider: str = ""
    error_message: str | None = None
    sent_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "status": self.status.value,
            "provider": self.provider,
            "error_message": self.error_message,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }


class EmailGateway(ABC):
    """Abstract base class for email gateways.

    ``send`` reports provider failures through ``EmailResult`` rather
    than raising; callers treat email as best-effort.
    """

    provider_name: str = "base"

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """Send a single email message."""

    async def close(self) -> None:
        """Release any held connections."""

    def validate_email(self, email: str) -> bool:
        return bool(EMAIL_PATTERN.match(email))

    def validate_message(self, message: EmailMessage) -> list[str]:
        """Validate email message.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not message.to:
            errors.append("At least one recipient is required")
        else:
            for email in message.to:
                if not self.validate_email(email):
                    errors.append(f"Invalid recipient email: {email}")

        if not message.subject:
            errors.append("Subject is required")

        if not message.body_text and not message.body_html:
            errors.append("Either text or HTML body is required")

        return errors

    def _failed(self, error: str) -> EmailResult:
        return EmailResult(
            success=False,
            status=EmailStatus.FAILED,
            provider=self.provider_name,
            error_message=error,
        )


class MockEmailGateway(EmailGateway):
    """Mock email gateway for development and testing.

    Set ``fail_with`` to make every send report that error.
    """

    provider_name = "mock"

    def __init__(self, fail_with: str | None = None):
        self.fail_with = fail_with
        self._sent_messages: list[dict[str, Any]] = []

    async def send(self, message: EmailMessage) -> EmailResult:
        errors = self.validate_message(message)
        if errors:
            return self._failed("; ".join(errors))

        if self.fail_with:
            log.warning("Mock email failure", to=message.to, error=self.fail_with)
            return self._failed(self.fail_with)

        message_id = str(uuid4())
        sent_at = datetime.now(timezone.utc)

        log.info(
            "Mock email sent",
            message_id=message_id,
            to=message.to,
            subject=message.subject,
        )

        self._sent_messages.append(
            {
                "message_id": message_id,
                "to": message.to,
                "subject": message.subject,
                "body_text": message.body_text,
                "body_html": message.body_html,
                "reference": message.reference,
                "sent_at": sent_at,
            }
        )

        return EmailResult(
            success=True,
            message_id=message_id,
            status=EmailStatus.SENT,
            provider=self.provider_name,
            sent_at=sent_at,
        )

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get list of all sent messages (for testing)."""
        return self._sent_messages.copy()

    def clear_sent_messages(self) -> None:
        self._sent_messages.clear()
