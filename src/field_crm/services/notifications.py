"""Best-effort customer and technician notifications.

Runs after a transition has committed. Works from plain snapshots so
nothing here touches the transition's session, and no failure here can
undo a committed state change.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from field_crm.config import get_settings
from field_crm.core.exceptions import FieldCRMError
from field_crm.core.log import get_logger
from field_crm.core.retry import RetryConfig
from field_crm.db.models.communications import ContactAttemptModel, ContactStatus, ContactType
from field_crm.db.models.jobs import JobModel
from field_crm.db.models.technicians import TechnicianModel
from field_crm.db.repositories.communications import ContactAttemptRepository
from field_crm.db.session import run_transaction
from field_crm.integrations.email import EmailGateway, EmailMessage, EmailResult, get_email_gateway
from field_crm.integrations.sms import SMSGateway, SMSMessage, SMSResult, get_sms_gateway

log = get_logger(__name__)


class NoticeKind:
    JOB_ASSIGNED = "job_assigned"
    TECHNICIAN_EN_ROUTE = "technician_en_route"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"


@dataclass(frozen=True)
class Notice:
    """Snapshot of what a notification needs, taken inside the transaction."""

    kind: str
    job_id: UUID
    job_number: str
    address: str
    service_type: str
    customer_name: str
    customer_phone: str | None = None
    technician_name: str | None = None
    technician_email: str | None = None
    estimated_arrival: str = "15-20 minutes"

    @classmethod
    def for_job(
        cls,
        kind: str,
        job: JobModel,
        technician: TechnicianModel | None = None,
    ) -> "Notice":
        return cls(
            kind=kind,
            job_id=job.id,
            job_number=job.job_number,
            address=job.address,
            service_type=job.service_type,
            customer_name=job.customer_name,
            customer_phone=job.customer_phone,
            technician_name=technician.full_name if technician else None,
            technician_email=technician.email if technician else None,
        )


def assignment_email(
    technician_name: str,
    technician_email: str,
    address: str,
    customer_name: str | None,
    service_type: str | None,
    company_name: str,
    distance_miles: float | None = None,
    job_url: str | None = None,
    reference: str | None = None,
) -> EmailMessage:
    """Build the "new job assignment" email sent to a technician."""
    customer = customer_name or "Customer"
    service = service_type or "Service Call"

    lines = [
        f"Hello {technician_name}, you have been assigned a new job at {address}.",
        f"Customer: {customer}.",
        f"Service: {service}.",
    ]
    if distance_miles is not None:
        lines.append(f"Distance: {distance_miles} miles.")
    if job_url:
        lines.append(f"Details: {job_url}")

    html_items = [
        f"<li><strong>Address:</strong> {address}</li>",
        f"<li><strong>Customer:</strong> {customer}</li>",
        f"<li><strong>Service:</strong> {service}</li>",
    ]
    if distance_miles is not None:
        html_items.append(f"<li><strong>Distance:</strong> {distance_miles} miles</li>")

    body_html = (
        f"<h2>{company_name}: New Job Assignment</h2>"
        f"<p>Hello {technician_name},</p>"
        f"<ul>{''.join(html_items)}</ul>"
    )
    if job_url:
        body_html += f'<p><a href="{job_url}">Open job</a></p>'

    return EmailMessage(
        to=technician_email,
        subject=f"New Job Assignment - {address}",
        body_text=" ".join(lines),
        body_html=body_html,
        reference=reference,
    )


class NotificationService:
    """Sends notices and logs each attempt as a ContactAttempt.

    Usage:
        service = NotificationService()
        await service.deliver_all(notices)
    """

    def __init__(
        self,
        email_gateway: EmailGateway | None = None,
        sms_gateway: SMSGateway | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        retry_config: RetryConfig | None = None,
        company_name: str | None = None,
        app_base_url: str | None = None,
    ):
        settings = get_settings()
        self.email_gateway = email_gateway or get_email_gateway()
        self.sms_gateway = sms_gateway or get_sms_gateway()
        self.session_factory = session_factory
        self.retry_config = retry_config
        self.company_name = company_name or settings.company_name
        self.app_base_url = (app_base_url or settings.app_base_url).rstrip("/")
        self.job_path = settings.dispatch.technician_job_path

    def job_url(self, job_id: UUID) -> str:
        return f"{self.app_base_url}{self.job_path}/{job_id}"

    async def deliver_all(self, notices: list[Notice]) -> None:
        for notice in notices:
            await self.deliver(notice)

    async def deliver(self, notice: Notice) -> bool:
        """Send one notice. Returns whether the provider accepted it."""
        if notice.kind == NoticeKind.JOB_ASSIGNED:
            return await self._send_assignment(notice)
        if notice.kind == NoticeKind.TECHNICIAN_EN_ROUTE:
            body = (
                f"Hi {notice.customer_name}, {notice.technician_name or 'your technician'} "
                f"from {self.company_name} is on the way! "
                f"Estimated arrival: {notice.estimated_arrival}. "
                "Call or text if you have questions."
            )
            return await self._send_customer_sms(notice, body, "En route notification")
        if notice.kind == NoticeKind.JOB_STARTED:
            body = (
                f"Hi {notice.customer_name}, {notice.technician_name or 'your technician'} "
                f"from {self.company_name} has started the work at your location. "
                "We will text you again when the job is complete."
            )
            return await self._send_customer_sms(notice, body, "Job in progress notification")
        if notice.kind == NoticeKind.JOB_COMPLETED:
            body = (
                f"Hi {notice.customer_name}, {notice.technician_name or 'your technician'} "
                f"has completed the work at your location. Thank you for choosing "
                f"{self.company_name}! Please let us know if you have any questions."
            )
            return await self._send_customer_sms(notice, body, "Job complete notification")

        log.warning("Unknown notice kind", kind=notice.kind, job_id=str(notice.job_id))
        return False

    async def send_assignment_email(
        self,
        technician_name: str,
        technician_email: str,
        address: str,
        customer_name: str | None = None,
        service_type: str | None = None,
        distance_miles: float | None = None,
        job_id: UUID | None = None,
    ) -> EmailResult:
        """Email a technician about a new job. Failures come back in the result."""
        message = assignment_email(
            technician_name=technician_name,
            technician_email=technician_email,
            address=address,
            customer_name=customer_name,
            service_type=service_type,
            company_name=self.company_name,
            distance_miles=distance_miles,
            job_url=self.job_url(job_id) if job_id else None,
            reference=str(job_id) if job_id else None,
        )
        result = await self.email_gateway.send(message)
        if not result.success:
            log.warning(
                "Assignment email not sent",
                to=technician_email,
                error=result.error_message,
            )
        return result

    async def _send_assignment(self, notice: Notice) -> bool:
        if not notice.technician_email:
            log.info("Technician has no email, skipping assignment email", job_id=str(notice.job_id))
            return False

        result = await self.send_assignment_email(
            technician_name=notice.technician_name or "Technician",
            technician_email=notice.technician_email,
            address=notice.address,
            customer_name=notice.customer_name,
            service_type=notice.service_type,
            job_id=notice.job_id,
        )
        await self.record_attempt(
            ContactAttemptModel(
                job_id=notice.job_id,
                contact_type=ContactType.EMAIL,
                status=ContactStatus.SENT if result.success else ContactStatus.FAILED,
                subject=f"Job Assignment - {notice.address}",
                content=f"Assignment email to {notice.technician_name}",
                recipient_email=notice.technician_email,
                external_id=result.message_id,
                failed_reason=result.error_message,
            )
        )
        return result.success

    async def _send_customer_sms(self, notice: Notice, body: str, summary: str) -> bool:
        if not notice.customer_phone:
            log.info("Customer has no phone, skipping SMS", job_id=str(notice.job_id), kind=notice.kind)
            return False

        result: SMSResult = await self.sms_gateway.send(
            SMSMessage(to=notice.customer_phone, body=body, reference=str(notice.job_id))
        )
        if not result.success:
            log.warning(
                "Customer SMS not sent",
                job_id=str(notice.job_id),
                kind=notice.kind,
                error=result.error_message,
            )

        await self.record_attempt(
            ContactAttemptModel(
                job_id=notice.job_id,
                contact_type=ContactType.SMS,
                status=ContactStatus.SENT if result.success else ContactStatus.FAILED,
                content=f"{summary} to {notice.customer_phone}",
                recipient_phone=notice.customer_phone,
                external_id=result.message_id,
                failed_reason=result.error_message,
            )
        )
        return result.success

    async def record_attempt(self, attempt: ContactAttemptModel) -> None:
        """Persist a contact attempt in its own unit of work.

        A failure to log is reported but never raised; the message has
        already gone out (or not) by this point.
        """

        async def write(session: AsyncSession) -> None:
            await ContactAttemptRepository(session).create(attempt)

        try:
            await run_transaction(
                write,
                session_factory=self.session_factory,
                config=self.retry_config,
            )
        except (FieldCRMError, SQLAlchemyError) as e:
            log.error(
                "Failed to record contact attempt",
                job_id=str(attempt.job_id) if attempt.job_id else None,
                contact_type=attempt.contact_type,
                error=str(e),
            )
