"""Outbound communication and in-app notification ORM models."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from field_crm.db.base import Base, UTCDateTime, UUIDMixin, UUIDType, utcnow


class ContactType:
    EMAIL = "email"
    SMS = "sms"


class ContactStatus:
    SENT = "sent"
    FAILED = "failed"


class ContactAttemptModel(Base, UUIDMixin):
    """Log entry for one outbound email or SMS."""

    __tablename__ = "contact_attempts"

    job_id: Mapped[UUID | None] = mapped_column(
        UUIDType(),
        ForeignKey("jobs.id"),
        nullable=True,
        index=True,
    )
    contact_type: Mapped[str] = mapped_column(String(20), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), nullable=False, default="outbound")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sent_by: Mapped[str] = mapped_column(String(64), nullable=False, default="automation")
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "job_id": str(self.job_id) if self.job_id else None,
            "contact_type": self.contact_type,
            "direction": self.direction,
            "status": self.status,
            "subject": self.subject,
            "recipient_email": self.recipient_email,
            "recipient_phone": self.recipient_phone,
            "sent_by": self.sent_by,
            "external_id": self.external_id,
            "failed_reason": self.failed_reason,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }


class NotificationModel(Base, UUIDMixin):
    """In-app notification for a user account."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    job_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "job_id": str(self.job_id) if self.job_id else None,
            "action_url": self.action_url,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
