"""Base SMS Gateway Interface.

Defines the abstract interface for SMS gateways and a mock
implementation for development and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from field_crm.core.log import get_logger

log = get_logger(__name__)


class SMSStatus(str, Enum):
    """Status of an SMS message."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class SMSMessage:
    """SMS message to send."""

    to: str  # Any common format; normalised to E.164 by the gateway
    body: str
    from_number: str | None = None
    reference: str | None = None


@dataclass
class SMSResult:
    """Result of an SMS send operation."""

    success: bool
    message_id: str | None = None
    status: SMSStatus = SMSStatus.UNKNOWN
    provider: str = ""
    error_message: str | None = None
    sent_at: datetime | None = None
    segments: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "status": self.status.value,
            "provider": self.provider,
            "error_message": self.error_message,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "segments": self.segments,
        }


class SMSGateway(ABC):
    """Abstract base class for SMS gateways."""

    provider_name: str = "base"
    default_country_code: str = "1"

    @abstractmethod
    async def send(self, message: SMSMessage) -> SMSResult:
        """Send a single SMS message."""

    async def close(self) -> None:
        """Release any held connections."""

    def normalize_phone(self, phone: str) -> str:
        """Normalize a phone number to E.164.

        Bare 10-digit numbers are treated as North American.
        """
        digits = "".join(c for c in phone if c.isdigit() or c == "+")

        if digits.startswith("+"):
            return digits
        if digits.startswith("00"):
            return "+" + digits[2:]
        if len(digits) == 11 and digits.startswith(self.default_country_code):
            return "+" + digits
        return f"+{self.default_country_code}{digits}"

    def calculate_segments(self, text: str) -> int:
        """Number of SMS segments for ``text`` (GSM-7 vs UCS-2 limits)."""
        is_gsm = all(ord(c) < 128 for c in text)
        single, multi = (160, 153) if is_gsm else (70, 67)
        if len(text) <= single:
            return 1
        return -(-len(text) // multi)


class MockSMSGateway(SMSGateway):
    """Mock SMS gateway for development and testing.

    Set ``fail_with`` to make every send report that error.
    """

    provider_name = "mock"

    def __init__(self, fail_with: str | None = None):
        self.fail_with = fail_with
        self._sent_messages: list[dict[str, Any]] = []

    async def send(self, message: SMSMessage) -> SMSResult:
        normalized_to = self.normalize_phone(message.to)

        if self.fail_with:
            log.warning("Mock SMS failure", to=normalized_to, error=self.fail_with)
            return SMSResult(
                success=False,
                status=SMSStatus.FAILED,
                provider=self.provider_name,
                error_message=self.fail_with,
            )

        message_id = str(uuid4())
        sent_at = datetime.now(timezone.utc)
        segments = self.calculate_segments(message.body)

        log.info(
            "Mock SMS sent",
            message_id=message_id,
            to=normalized_to,
            body_length=len(message.body),
            segments=segments,
        )

        self._sent_messages.append({
            "message_id": message_id,
            "to": normalized_to,
            "body": message.body,
            "reference": message.reference,
            "sent_at": sent_at,
        })

        return SMSResult(
            success=True,
            message_id=message_id,
            status=SMSStatus.SENT,
            provider=self.provider_name,
            sent_at=sent_at,
            segments=segments,
        )

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get list of all sent messages (for testing)."""
        return self._sent_messages.copy()

    def clear_sent_messages(self) -> None:
        self._sent_messages.clear()
