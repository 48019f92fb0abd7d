"""Tests for closest-technician dispatch."""

from __future__ import annotations

from uuid import uuid4

import pytest

from field_crm.db.models.communications import ContactStatus
from field_crm.db.models.technicians import TechnicianStatus
from field_crm.db.repositories import ContactAttemptRepository, TechnicianLocationRepository
from field_crm.integrations.email import MockEmailGateway
from field_crm.integrations.sms import MockSMSGateway
from field_crm.services.dispatch import (
    GEOCODE_FAILED,
    NO_LOCATED_TECHNICIANS,
    DispatchService,
    rank_available_technicians,
)
from field_crm.services.geo_service import GeoLocation
from field_crm.services.notifications import NotificationService

SITE_LAT = 39.7817
SITE_LNG = -89.6501


class StubGeo:
    """Geocoder returning a fixed answer."""

    def __init__(self, location: GeoLocation | None):
        self.location = location
        self.addresses: list[str] = []

    async def geocode(self, address):
        self.addresses.append(address)
        return self.location


@pytest.fixture
def site_geo():
    return StubGeo(GeoLocation(latitude=SITE_LAT, longitude=SITE_LNG))


@pytest.fixture
def locate(db_session):
    """Record a GPS fix for a technician and commit it."""

    async def _locate(technician, latitude, longitude):
        await TechnicianLocationRepository(db_session).record(technician, latitude, longitude)
        await db_session.commit()

    return _locate


@pytest.fixture
def dispatcher(site_geo, notification_service, session_factory, fast_retry):
    return DispatchService(
        geo_service=site_geo,
        notification_service=notification_service,
        session_factory=session_factory,
        retry_config=fast_retry,
    )


class TestRanking:
    """Tests for rank_available_technicians()."""

    @pytest.mark.asyncio
    async def test_nearest_first_and_unlocated_skipped(self, db_session, make_technician, locate):
        far = await make_technician(full_name="Far")
        near = await make_technician(full_name="Near")
        await make_technician(full_name="Nowhere")
        await locate(far, SITE_LAT + 0.1, SITE_LNG)
        await locate(near, SITE_LAT + 0.01, SITE_LNG)

        ranked = await rank_available_technicians(db_session, SITE_LAT, SITE_LNG)

        assert [c.technician.full_name for c in ranked] == ["Near", "Far"]
        assert ranked[0].distance_meters < ranked[1].distance_meters

    @pytest.mark.asyncio
    async def test_busy_technicians_excluded(self, db_session, make_technician, locate):
        busy = await make_technician(full_name="Busy", status=TechnicianStatus.BUSY)
        await locate(busy, SITE_LAT, SITE_LNG)

        assert await rank_available_technicians(db_session, SITE_LAT, SITE_LNG) == []

    @pytest.mark.asyncio
    async def test_latest_fix_is_used(self, db_session, make_technician, locate):
        tech = await make_technician()
        await locate(tech, SITE_LAT + 0.5, SITE_LNG)
        await locate(tech, SITE_LAT, SITE_LNG)

        ranked = await rank_available_technicians(db_session, SITE_LAT, SITE_LNG)

        assert len(ranked) == 1
        assert ranked[0].distance_meters == 0


class TestDispatchToClosest:
    """Tests for DispatchService.dispatch_to_closest()."""

    @pytest.mark.asyncio
    async def test_dispatches_closest_and_emails(
        self, dispatcher, email_gateway, session_factory, make_technician, locate
    ):
        far = await make_technician(full_name="Far", email="far@example.com")
        near = await make_technician(full_name="Near", email="near@example.com")
        await locate(far, SITE_LAT + 0.1, SITE_LNG)
        await locate(near, SITE_LAT + 0.01, SITE_LNG)
        job_id = uuid4()

        result = await dispatcher.dispatch_to_closest(
            "100 Main St, Springfield",
            job_id=job_id,
            customer_name="Jane Customer",
            service_type="drain_cleaning",
        )

        assert result.success is True
        assert result.technician.id == near.id
        assert result.email_sent is True
        assert 0.6 < result.distance_miles < 0.8
        assert (result.latitude, result.longitude) == (SITE_LAT, SITE_LNG)

        sent = email_gateway.get_sent_messages()
        assert sent[0]["to"] == ["near@example.com"]
        assert "Distance: " in sent[0]["body_text"]

        async with session_factory() as session:
            attempts = await ContactAttemptRepository(session).list_for_job(job_id)
        assert len(attempts) == 1
        assert attempts[0].status == ContactStatus.SENT

    @pytest.mark.asyncio
    async def test_geocode_failure(self, notification_service, session_factory, fast_retry):
        service = DispatchService(
            geo_service=StubGeo(None),
            notification_service=notification_service,
            session_factory=session_factory,
            retry_config=fast_retry,
        )

        result = await service.dispatch_to_closest("nowhere at all")

        assert result.success is False
        assert result.error == GEOCODE_FAILED
        assert result.latitude is None

    @pytest.mark.asyncio
    async def test_no_located_technicians(self, dispatcher, make_technician):
        await make_technician()

        result = await dispatcher.dispatch_to_closest("100 Main St")

        assert result.success is False
        assert result.error == NO_LOCATED_TECHNICIANS
        assert (result.latitude, result.longitude) == (SITE_LAT, SITE_LNG)

    @pytest.mark.asyncio
    async def test_email_failure_still_dispatches(
        self, site_geo, session_factory, fast_retry, make_technician, locate
    ):
        notifications = NotificationService(
            email_gateway=MockEmailGateway(fail_with="mailbox full"),
            sms_gateway=MockSMSGateway(),
            session_factory=session_factory,
            retry_config=fast_retry,
        )
        service = DispatchService(
            geo_service=site_geo,
            notification_service=notifications,
            session_factory=session_factory,
            retry_config=fast_retry,
        )
        tech = await make_technician()
        await locate(tech, SITE_LAT, SITE_LNG)
        job_id = uuid4()

        result = await service.dispatch_to_closest("100 Main St", job_id=job_id)

        assert result.success is True
        assert result.email_sent is False

        async with session_factory() as session:
            attempts = await ContactAttemptRepository(session).list_for_job(job_id)
        assert attempts[0].status == ContactStatus.FAILED
        assert attempts[0].failed_reason == "mailbox full"

    @pytest.mark.asyncio
    async def test_technician_without_email(
        self, dispatcher, email_gateway, make_technician, locate
    ):
        tech = await make_technician(email=None)
        await locate(tech, SITE_LAT, SITE_LNG)

        result = await dispatcher.dispatch_to_closest("100 Main St")

        assert result.success is True
        assert result.email_sent is False
        assert email_gateway.get_sent_messages() == []

    @pytest.mark.asyncio
    async def test_result_serialises(self, dispatcher, make_technician, locate):
        tech = await make_technician()
        await locate(tech, SITE_LAT, SITE_LNG)

        payload = (await dispatcher.dispatch_to_closest("100 Main St")).to_dict()

        assert payload["success"] is True
        assert payload["technician"]["full_name"] == "Tom Pipes"
        assert payload["distance_meters"] == 0
        assert payload["location"]["latitude"] == SITE_LAT
