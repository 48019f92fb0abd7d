"""SMS Gateway Factory.

Supported providers:
- twilio: Twilio REST API
- mock: For development and testing
"""

from __future__ import annotations

from field_crm.config import get_settings
from field_crm.core.log import get_logger
from field_crm.integrations.sms.base import MockSMSGateway, SMSGateway

log = get_logger(__name__)

# Singleton instance
_sms_gateway: SMSGateway | None = None


def get_sms_gateway() -> SMSGateway:
    """Get the configured SMS gateway."""
    global _sms_gateway

    if _sms_gateway is not None:
        return _sms_gateway

    sms_config = get_settings().integrations.sms

    if not sms_config.enabled:
        log.info("SMS gateway disabled, using mock")
        _sms_gateway = MockSMSGateway()
        return _sms_gateway

    provider = sms_config.provider.lower()

    if provider == "twilio":
        twilio_config = sms_config.twilio

        if not twilio_config.account_sid or not twilio_config.auth_token:
            log.warning("Twilio credentials not configured, using mock SMS")
            _sms_gateway = MockSMSGateway()
        else:
            from field_crm.integrations.sms.twilio import TwilioSMSGateway

            _sms_gateway = TwilioSMSGateway(
                account_sid=twilio_config.account_sid,
                auth_token=twilio_config.auth_token,
                from_number=twilio_config.from_number,
                messaging_service_sid=twilio_config.messaging_service_sid or None,
                timeout=sms_config.timeout,
            )
            log.info("Twilio SMS gateway initialized", from_number=twilio_config.from_number)

    elif provider == "mock":
        _sms_gateway = MockSMSGateway()

    else:
        log.warning("Unknown SMS provider, using mock", provider=provider)
        _sms_gateway = MockSMSGateway()

    return _sms_gateway


def reset_sms_gateway() -> None:
    """Reset the SMS gateway (for testing)."""
    global _sms_gateway
    _sms_gateway = None
