"""Test fixtures for email integration tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest


@pytest.fixture
def mock_sendgrid_client():
    """Mock SendGrid HTTP client."""
    with patch("httpx.AsyncClient") as mock:
        client = MagicMock()
        client.post = AsyncMock()
        client.aclose = AsyncMock()

        # SendGrid accepts with 202 and no body
        mock_response = MagicMock()
        mock_response.status_code = 202
        mock_response.headers = {"X-Message-Id": "sendgrid_msg_123"}
        mock_response.content = b""
        client.post.return_value = mock_response

        mock.return_value = client
        yield client


@pytest.fixture
def sendgrid_gateway(mock_sendgrid_client):
    """Create SendGridEmailGateway with mocked client."""
    from field_crm.integrations.email.sendgrid import SendGridEmailGateway

    gateway = SendGridEmailGateway(
        api_key="SG.test_api_key",
        from_email="dispatch@acme-plumbing.com",
        from_name="Acme Plumbing",
    )
    gateway._client = mock_sendgrid_client
    return gateway


@pytest.fixture
def sample_email_message():
    from field_crm.integrations.email.base import EmailMessage

    return EmailMessage(
        to="tom@example.com",
        subject="New Job Assignment - 100 Main St",
        body_text="Hello Tom, you have been assigned a new job at 100 Main St.",
        body_html="<p>Hello Tom, you have been assigned a new job at 100 Main St.</p>",
        reference="job-123",
    )
