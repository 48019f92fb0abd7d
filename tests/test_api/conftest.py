"""Fixtures for API tests: the app wired to the per-test database."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio


class FixedGeo:
    """Geocoder that resolves every address to the same point, or to nothing."""

    def __init__(self, latitude: float | None = 39.7817, longitude: float | None = -89.6501):
        self.latitude = latitude
        self.longitude = longitude
        self.calls: list[str] = []

    async def geocode(self, address):
        from field_crm.services.geo_service import GeoLocation

        self.calls.append(address)
        if self.latitude is None:
            return None
        return GeoLocation(latitude=self.latitude, longitude=self.longitude)


@pytest.fixture
def fixed_geo():
    return FixedGeo()


@pytest.fixture
def app(session_factory, fast_retry, fixed_geo, notification_service):
    from field_crm.dependencies import (
        get_db_session_factory,
        get_geo,
        get_notification_service,
        get_retry_config,
    )
    from field_crm.main import create_app

    application = create_app()
    application.dependency_overrides[get_db_session_factory] = lambda: session_factory
    application.dependency_overrides[get_retry_config] = lambda: fast_retry
    application.dependency_overrides[get_geo] = lambda: fixed_geo
    application.dependency_overrides[get_notification_service] = lambda: notification_service
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
