"""SendGrid Email Gateway Implementation.

Uses the SendGrid Web API v3 mail/send endpoint over httpx.
API Documentation: https://docs.sendgrid.com/api-reference/mail-send
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from field_crm.core.log import get_logger
from field_crm.integrations.email.base import (
    EmailGateway,
    EmailMessage,
    EmailResult,
    EmailStatus,
)

log = get_logger(__name__)


class SendGridEmailGateway(EmailGateway):
    """SendGrid email gateway implementation."""

    provider_name = "sendgrid"
    API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        api_key: str,
        from_email: str | None = None,
        from_name: str | None = None,
        api_url: str | None = None,
        timeout: float = 10.0,
    ):
        self.from_email = from_email
        self.from_name = from_name
        self.api_url = api_url or self.API_URL

        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def send(self, message: EmailMessage) -> EmailResult:
        errors = self.validate_message(message)
        if errors:
            return self._failed("; ".join(errors))

        from_email = message.from_email or self.from_email
        if not from_email:
            return self._failed("No sender email configured")

        payload = self._build_payload(message, from_email, message.from_name or self.from_name)

        try:
            response = await self._client.post(self.api_url, json=payload)
        except httpx.TimeoutException:
            log.error("SendGrid email timeout", to=message.to)
            return self._failed("Request timeout")
        except httpx.HTTPError as e:
            log.error("SendGrid email HTTP error", error=str(e), to=message.to)
            return self._failed(f"HTTP error: {e}")

        if response.status_code in (200, 202):
            message_id = response.headers.get("X-Message-Id", "")
            log.info(
                "Email sent via SendGrid",
                message_id=message_id,
                to=message.to,
                subject=message.subject,
            )
            return EmailResult(
                success=True,
                message_id=message_id,
                status=EmailStatus.QUEUED,
                provider=self.provider_name,
                sent_at=datetime.now(timezone.utc),
            )

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}
        details = error_data.get("errors") or [{}]
        error_message = details[0].get("message") or f"HTTP {response.status_code}"

        log.error(
            "SendGrid email failed",
            status_code=response.status_code,
            error=error_message,
            to=message.to,
        )
        return self._failed(error_message)

    def _build_payload(
        self,
        message: EmailMessage,
        from_email: str,
        from_name: str | None,
    ) -> dict[str, Any]:
        sender: dict[str, str] = {"email": from_email}
        if from_name:
            sender["name"] = from_name

        content = []
        if message.body_text:
            content.append({"type": "text/plain", "value": message.body_text})
        if message.body_html:
            content.append({"type": "text/html", "value": message.body_html})

        personalization: dict[str, Any] = {"to": [{"email": to} for to in message.to]}
        if message.reference:
            personalization["custom_args"] = {"reference": message.reference}

        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": sender,
            "subject": message.subject,
            "content": content,
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}
        return payload

    async def close(self) -> None:
        await self._client.aclose()
