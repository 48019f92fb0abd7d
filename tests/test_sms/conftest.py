"""Test fixtures for SMS integration tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


@pytest.fixture
def mock_twilio_client():
    """Mock Twilio HTTP client."""
    with patch("httpx.AsyncClient") as mock:
        client = MagicMock()
        client.post = AsyncMock()
        client.aclose = AsyncMock()

        # Mock successful send response
        mock_response = MagicMock()
        mock_response.status_code = 201
        mock_response.json.return_value = {
            "sid": "SM123456789",
            "status": "queued",
            "to": "+12175550142",
            "from": "+12175550100",
            "body": "Test message",
            "num_segments": "1",
        }
        client.post.return_value = mock_response

        mock.return_value = client
        yield client


@pytest.fixture
def twilio_gateway(mock_twilio_client):
    """Create TwilioSMSGateway with mocked client."""
    from field_crm.integrations.sms.twilio import TwilioSMSGateway

    gateway = TwilioSMSGateway(
        account_sid="AC123456789",
        auth_token="test_auth_token",
        from_number="+12175550100",
    )
    gateway._client = mock_twilio_client
    return gateway


@pytest.fixture
def sample_sms_message():
    from field_crm.integrations.sms.base import SMSMessage

    return SMSMessage(
        to="(217) 555-0142",
        body="Hi Jane, Tom from Acme Plumbing is on the way!",
        reference="job-123",
    )
