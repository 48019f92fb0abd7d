"""Email Gateway Factory.

Supported providers:
- sendgrid: SendGrid Web API
- mock: For development and testing
"""

from __future__ import annotations

from field_crm.config import get_settings
from field_crm.core.log import get_logger
from field_crm.integrations.email.base import EmailGateway, MockEmailGateway

log = get_logger(__name__)

# Singleton instance
_email_gateway: EmailGateway | None = None


def get_email_gateway() -> EmailGateway:
    """Get the configured email gateway."""
    global _email_gateway

    if _email_gateway is not None:
        return _email_gateway

    email_config = get_settings().integrations.email

    if not email_config.enabled:
        log.info("Email gateway disabled, using mock")
        _email_gateway = MockEmailGateway()
        return _email_gateway

    provider = email_config.provider.lower()

    if provider == "sendgrid":
        if not email_config.sendgrid.api_key:
            log.warning("SendGrid API key not configured, using mock email")
            _email_gateway = MockEmailGateway()
        else:
            from field_crm.integrations.email.sendgrid import SendGridEmailGateway

            _email_gateway = SendGridEmailGateway(
                api_key=email_config.sendgrid.api_key,
                from_email=email_config.from_email or None,
                from_name=email_config.from_name or None,
                api_url=email_config.sendgrid.api_url,
                timeout=email_config.timeout,
            )
            log.info("SendGrid email gateway initialized", from_email=email_config.from_email)

    elif provider == "mock":
        _email_gateway = MockEmailGateway()

    else:
        log.warning("Unknown email provider, using mock", provider=provider)
        _email_gateway = MockEmailGateway()

    return _email_gateway


def reset_email_gateway() -> None:
    """Reset the email gateway (for testing)."""
    global _email_gateway
    _email_gateway = None
