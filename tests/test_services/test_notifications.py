"""Tests for post-commit notifications."""

from __future__ import annotations

import pytest

from field_crm.db.models.communications import ContactStatus, ContactType
from field_crm.db.repositories import ContactAttemptRepository
from field_crm.integrations.email import MockEmailGateway
from field_crm.integrations.sms import MockSMSGateway
from field_crm.services.notifications import Notice, NoticeKind, NotificationService


async def _attempts(session_factory, job_id):
    async with session_factory() as session:
        return await ContactAttemptRepository(session).list_for_job(job_id)


class TestDeliver:
    """Tests for NotificationService.deliver()."""

    @pytest.mark.asyncio
    async def test_assignment_email_sent_and_logged(
        self, notification_service, email_gateway, session_factory, sample_job, sample_technician
    ):
        notice = Notice.for_job(NoticeKind.JOB_ASSIGNED, sample_job, sample_technician)

        assert await notification_service.deliver(notice) is True

        sent = email_gateway.get_sent_messages()
        assert len(sent) == 1
        assert sent[0]["to"] == ["tom@example.com"]
        assert sent[0]["subject"] == "New Job Assignment - 100 Main St"
        assert f"https://crm.example.com/technician/jobs/{sample_job.id}" in sent[0]["body_text"]

        attempts = await _attempts(session_factory, sample_job.id)
        assert len(attempts) == 1
        assert attempts[0].contact_type == ContactType.EMAIL
        assert attempts[0].status == ContactStatus.SENT
        assert attempts[0].recipient_email == "tom@example.com"

    @pytest.mark.asyncio
    async def test_en_route_sms_to_customer(
        self, notification_service, sms_gateway, sample_job, sample_technician
    ):
        notice = Notice.for_job(NoticeKind.TECHNICIAN_EN_ROUTE, sample_job, sample_technician)

        assert await notification_service.deliver(notice) is True

        sent = sms_gateway.get_sent_messages()
        assert sent[0]["to"] == "+12175550142"
        assert sent[0]["body"].startswith(
            "Hi Jane Customer, Tom Pipes from Acme Plumbing is on the way!"
        )
        assert "Estimated arrival: 15-20 minutes." in sent[0]["body"]

    @pytest.mark.asyncio
    async def test_job_started_sms_to_customer(
        self, notification_service, sms_gateway, session_factory, sample_job, sample_technician
    ):
        notice = Notice.for_job(NoticeKind.JOB_STARTED, sample_job, sample_technician)

        assert await notification_service.deliver(notice) is True

        sent = sms_gateway.get_sent_messages()
        assert sent[0]["to"] == "+12175550142"
        assert sent[0]["body"].startswith(
            "Hi Jane Customer, Tom Pipes from Acme Plumbing has started the work"
        )

        attempts = await _attempts(session_factory, sample_job.id)
        assert attempts[0].content == "Job in progress notification to (217) 555-0142"

    @pytest.mark.asyncio
    async def test_completion_sms_to_customer(
        self, notification_service, sms_gateway, session_factory, sample_job, sample_technician
    ):
        notice = Notice.for_job(NoticeKind.JOB_COMPLETED, sample_job, sample_technician)

        await notification_service.deliver(notice)

        body = sms_gateway.get_sent_messages()[0]["body"]
        assert "has completed the work at your location" in body
        assert "Thank you for choosing Acme Plumbing!" in body

        attempts = await _attempts(session_factory, sample_job.id)
        assert attempts[0].contact_type == ContactType.SMS
        assert attempts[0].recipient_phone == "(217) 555-0142"

    @pytest.mark.asyncio
    async def test_customer_without_phone_is_skipped(
        self, notification_service, sms_gateway, session_factory, sample_job
    ):
        sample_job.customer_phone = None
        notice = Notice.for_job(NoticeKind.JOB_COMPLETED, sample_job)

        assert await notification_service.deliver(notice) is False
        assert sms_gateway.get_sent_messages() == []
        assert await _attempts(session_factory, sample_job.id) == []

    @pytest.mark.asyncio
    async def test_gateway_failure_is_logged_as_failed_attempt(
        self, session_factory, fast_retry, sample_job, sample_technician
    ):
        service = NotificationService(
            email_gateway=MockEmailGateway(fail_with="mailbox unavailable"),
            sms_gateway=MockSMSGateway(),
            session_factory=session_factory,
            retry_config=fast_retry,
        )
        notice = Notice.for_job(NoticeKind.JOB_ASSIGNED, sample_job, sample_technician)

        assert await service.deliver(notice) is False

        attempts = await _attempts(session_factory, sample_job.id)
        assert attempts[0].status == ContactStatus.FAILED
        assert attempts[0].failed_reason == "mailbox unavailable"

    @pytest.mark.asyncio
    async def test_unknown_kind(self, notification_service, sample_job):
        notice = Notice.for_job("carrier_pigeon", sample_job)

        assert await notification_service.deliver(notice) is False

    @pytest.mark.asyncio
    async def test_deliver_all_sends_each_notice(
        self, notification_service, email_gateway, sms_gateway, sample_job, sample_technician
    ):
        await notification_service.deliver_all(
            [
                Notice.for_job(NoticeKind.JOB_ASSIGNED, sample_job, sample_technician),
                Notice.for_job(NoticeKind.TECHNICIAN_EN_ROUTE, sample_job, sample_technician),
            ]
        )

        assert len(email_gateway.get_sent_messages()) == 1
        assert len(sms_gateway.get_sent_messages()) == 1
