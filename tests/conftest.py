"""Pytest configuration and fixtures for Field CRM tests."""

from __future__ import annotations

import os
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Set test environment before any settings are loaded
os.environ["FCRM_ENV"] = "test"
os.environ["FCRM_DEBUG"] = "true"
os.environ["FCRM_DATABASE__URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FCRM_GEOCODING__PROVIDER"] = "disabled"
os.environ["FCRM_RATE_LIMIT_ENABLED"] = "false"


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Reset cached gateways and services between tests."""
    from field_crm.integrations.email import reset_email_gateway
    from field_crm.integrations.sms import reset_sms_gateway
    from field_crm.services.geo_service import reset_geo_service

    yield
    reset_email_gateway()
    reset_sms_gateway()
    reset_geo_service()


# ============================================================================
# Async Database Fixtures
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh in-memory SQLite database for each test function."""
    from field_crm.db.session import create_test_engine

    engine = await create_test_engine()
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    from field_crm.db.session import make_session_factory

    return make_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator:
    """Session on the test database; uncommitted work is rolled back."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fast_retry():
    """Database retry policy without sleeping."""
    from field_crm.core.retry import DATABASE_RETRY_CONFIG, RetryConfig

    return RetryConfig(
        max_attempts=3,
        base_delay=0.0,
        max_delay=0.0,
        backoff=DATABASE_RETRY_CONFIG.backoff,
        retryable_exceptions=DATABASE_RETRY_CONFIG.retryable_exceptions,
        non_retryable_exceptions=DATABASE_RETRY_CONFIG.non_retryable_exceptions,
    )


@pytest.fixture
def dispatch_settings():
    from field_crm.config import DispatchSettings

    return DispatchSettings()


@pytest.fixture
def permissive_settings():
    from field_crm.config import DispatchSettings

    return DispatchSettings(strict_transitions=False)


# ============================================================================
# Gateway and Service Fixtures
# ============================================================================


@pytest.fixture
def email_gateway():
    from field_crm.integrations.email import MockEmailGateway

    return MockEmailGateway()


@pytest.fixture
def sms_gateway():
    from field_crm.integrations.sms import MockSMSGateway

    return MockSMSGateway()


@pytest.fixture
def notification_service(email_gateway, sms_gateway, session_factory, fast_retry):
    from field_crm.services.notifications import NotificationService

    return NotificationService(
        email_gateway=email_gateway,
        sms_gateway=sms_gateway,
        session_factory=session_factory,
        retry_config=fast_retry,
        company_name="Acme Plumbing",
        app_base_url="https://crm.example.com",
    )


@pytest.fixture
def lifecycle(db_session, dispatch_settings):
    from field_crm.services.job_lifecycle import JobLifecycleService

    return JobLifecycleService(db_session, dispatch_settings)


# ============================================================================
# Sample Data Fixtures
# ============================================================================

# Job site used throughout: Springfield, IL
JOB_LAT = 39.7817
JOB_LNG = -89.6501


@pytest.fixture
def make_technician(db_session):
    """Factory creating committed technicians."""
    from field_crm.db.models.technicians import TechnicianModel
    from field_crm.db.repositories import TechnicianRepository

    async def _make(**fields) -> TechnicianModel:
        fields.setdefault("full_name", "Tom Pipes")
        fields.setdefault("email", "tom@example.com")
        fields.setdefault("phone", "+15550100")
        technician = await TechnicianRepository(db_session).create(TechnicianModel(**fields))
        await db_session.commit()
        return technician

    return _make


@pytest_asyncio.fixture
async def sample_technician(make_technician):
    return await make_technician(
        full_name="Tom Pipes",
        user_id="user-tom",
        hourly_rate=Decimal("40.00"),
    )


@pytest_asyncio.fixture
async def sample_salesperson(db_session):
    from field_crm.db.models.sales import SalespersonModel
    from field_crm.db.repositories import SalespersonRepository

    salesperson = await SalespersonRepository(db_session).create(
        SalespersonModel(
            full_name="Sally Sales",
            email="sally@example.com",
            commission_rate=Decimal("0.15"),
        )
    )
    await db_session.commit()
    return salesperson


@pytest.fixture
def job_draft():
    from field_crm.services.job_lifecycle import JobDraft

    return JobDraft(
        customer_name="Jane Customer",
        customer_phone="(217) 555-0142",
        address="100 Main St",
        city="Springfield",
        zip_code="62701",
        service_type="drain_cleaning",
        latitude=JOB_LAT,
        longitude=JOB_LNG,
    )


@pytest_asyncio.fixture
async def sample_job(db_session, lifecycle, job_draft):
    job = await lifecycle.create_job(job_draft, created_by="dispatcher-1")
    await db_session.commit()
    return job
