"""Twilio SMS Gateway Implementation.

Uses the Twilio REST API Messages resource over httpx.
API Documentation: https://www.twilio.com/docs/sms/api
"""
from __future__ import annotations

from datetime import datetime, timezone

import httpx

from field_crm.core.log import get_logger
from field_crm.integrations.sms.base import (
    SMSGateway,
    SMSMessage,
    SMSResult,
    SMSStatus,
)

log = get_logger(__name__)


# Twilio status to our status mapping
TWILIO_STATUS_MAP: dict[str, SMSStatus] = {
    "queued": SMSStatus.PENDING,
    "accepted": SMSStatus.PENDING,
    "sending": SMSStatus.PENDING,
    "sent": SMSStatus.SENT,
    "delivered": SMSStatus.DELIVERED,
    "failed": SMSStatus.FAILED,
    "undelivered": SMSStatus.FAILED,
    "canceled": SMSStatus.FAILED,
}


class TwilioSMSGateway(SMSGateway):
    """Twilio SMS gateway implementation."""

    provider_name = "twilio"
    API_BASE = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        messaging_service_sid: str | None = None,
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid

        self._client = httpx.AsyncClient(
            base_url=f"{self.API_BASE}/Accounts/{account_sid}",
            auth=httpx.BasicAuth(account_sid, auth_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def send(self, message: SMSMessage) -> SMSResult:
        normalized_to = self.normalize_phone(message.to)

        data = {"To": normalized_to, "Body": message.body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = message.from_number or self.from_number

        try:
            response = await self._client.post("/Messages.json", data=data)
        except httpx.TimeoutException:
            log.error("Twilio SMS timeout", to=normalized_to)
            return self._failed("Request timeout")
        except httpx.HTTPError as e:
            log.error("Twilio SMS HTTP error", error=str(e), to=normalized_to)
            return self._failed(f"HTTP error: {e}")

        if response.status_code in (200, 201):
            result_data = response.json()
            message_sid = result_data.get("sid", "")
            status = result_data.get("status", "queued")
            num_segments = result_data.get("num_segments") or 1

            log.info(
                "SMS sent via Twilio",
                message_sid=message_sid,
                to=normalized_to,
                status=status,
            )
            return SMSResult(
                success=True,
                message_id=message_sid,
                status=TWILIO_STATUS_MAP.get(status, SMSStatus.PENDING),
                provider=self.provider_name,
                sent_at=datetime.now(timezone.utc),
                segments=int(num_segments),
            )

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}
        error_code = str(error_data.get("code", response.status_code))
        error_message = error_data.get("message", f"HTTP {response.status_code}")

        log.error(
            "Twilio SMS failed",
            status_code=response.status_code,
            error_code=error_code,
            error=error_message,
            to=normalized_to,
        )
        return self._failed(f"[{error_code}] {error_message}")

    def _failed(self, error: str) -> SMSResult:
        return SMSResult(
            success=False,
            status=SMSStatus.FAILED,
            provider=self.provider_name,
            error_message=error,
        )

    async def close(self) -> None:
        await self._client.aclose()
