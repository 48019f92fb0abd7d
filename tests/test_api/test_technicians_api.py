"""Tests for technician and dispatch endpoints."""

from __future__ import annotations

from uuid import uuid4

import pytest

TECHS = "/api/v1/technicians"


class TestLocations:
    """GPS reporting and reads."""

    @pytest.mark.asyncio
    async def test_report_and_read_latest(self, client, sample_technician):
        url = f"{TECHS}/{sample_technician.id}"

        first = await client.post(f"{url}/location", json={"latitude": 39.70, "longitude": -89.60})
        second = await client.post(
            f"{url}/location",
            json={"latitude": 39.78, "longitude": -89.65, "accuracy": 4.5, "is_moving": True},
        )
        assert first.status_code == 201
        assert second.json()["is_moving"] is True

        latest = (await client.get(f"{url}/location/latest")).json()
        assert latest["latitude"] == 39.78
        assert latest["accuracy"] == 4.5

        history = (await client.get(f"{url}/locations", params={"limit": 5})).json()
        assert [loc["latitude"] for loc in history["locations"]] == [39.78, 39.70]

        tech = (await client.get(f"{TECHS}/available")).json()["technicians"][0]
        assert tech["last_location"]["latitude"] == 39.78

    @pytest.mark.asyncio
    async def test_latest_without_reports(self, client, sample_technician):
        response = await client.get(f"{TECHS}/{sample_technician.id}/location/latest")

        assert response.status_code == 404
        assert response.json()["message"] == "Technician has not reported a location"

    @pytest.mark.asyncio
    async def test_report_for_unknown_technician(self, client):
        response = await client.post(
            f"{TECHS}/{uuid4()}/location", json={"latitude": 1.0, "longitude": 1.0}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_out_of_range_coordinates(self, client, sample_technician):
        response = await client.post(
            f"{TECHS}/{sample_technician.id}/location", json={"latitude": 91, "longitude": 0}
        )

        assert response.status_code == 422


class TestAvailability:
    """Availability listing and daily counters."""

    @pytest.mark.asyncio
    async def test_available_and_reset(self, client, make_technician):
        await make_technician(full_name="Worked", completed_jobs_today=4)
        await make_technician(full_name="Off", status="off_duty")

        available = (await client.get(f"{TECHS}/available")).json()
        assert available["total"] == 1
        assert available["technicians"][0]["full_name"] == "Worked"

        response = await client.post(f"{TECHS}/reset-daily-counters")
        assert response.json() == {"reset": 1}


class TestDispatchEndpoint:
    """POST /dispatch/closest-technician."""

    @pytest.mark.asyncio
    async def test_dispatch_to_closest(self, client, make_technician, email_gateway):
        near = await make_technician(full_name="Near", email="near@example.com")
        far = await make_technician(full_name="Far", email="far@example.com")
        await client.post(f"{TECHS}/{far.id}/location", json={"latitude": 39.90, "longitude": -89.65})
        await client.post(f"{TECHS}/{near.id}/location", json={"latitude": 39.79, "longitude": -89.65})

        response = await client.post(
            "/api/v1/dispatch/closest-technician",
            json={"address": "100 Main St", "customer_name": "Jane", "service_type": "drain_cleaning"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["technician"]["full_name"] == "Near"
        assert body["email_sent"] is True
        assert email_gateway.get_sent_messages()[0]["to"] == ["near@example.com"]

    @pytest.mark.asyncio
    async def test_dispatch_without_located_technicians(self, client, sample_technician):
        response = await client.post(
            "/api/v1/dispatch/closest-technician", json={"address": "100 Main St"}
        )

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert body["error"] == "No available technicians with location data found"

    @pytest.mark.asyncio
    async def test_dispatch_geocode_failure(self, client, fixed_geo):
        fixed_geo.latitude = None

        response = await client.post(
            "/api/v1/dispatch/closest-technician", json={"address": "nowhere"}
        )

        assert response.json()["error"] == "Could not geocode the provided address"
