"""SMS gateway integrations."""
from field_crm.integrations.sms.base import (
    MockSMSGateway,
    SMSGateway,
    SMSMessage,
    SMSResult,
    SMSStatus,
)
from field_crm.integrations.sms.factory import get_sms_gateway, reset_sms_gateway

__all__ = [
    "MockSMSGateway",
    "SMSGateway",
    "SMSMessage",
    "SMSResult",
    "SMSStatus",
    "get_sms_gateway",
    "reset_sms_gateway",
]
