"""Tests for commission endpoints."""

from __future__ import annotations

from uuid import uuid4

import pytest
import pytest_asyncio

API = "/api/v1/commissions"


@pytest_asyncio.fixture
async def finished_job(client, sample_technician, sample_salesperson):
    """Job driven to completion over HTTP with 500 revenue and 100 labor."""
    response = await client.post(
        "/api/v1/jobs",
        json={
            "customer_name": "Jane Customer",
            "address": "100 Main St",
            "service_type": "drain_cleaning",
            "assigned_salesperson_id": str(sample_salesperson.id),
        },
    )
    job = response.json()
    url = f"/api/v1/jobs/{job['id']}"
    await client.post(f"{url}/assign", json={"technician_id": str(sample_technician.id)})
    for step in ("confirm", "en-route", "arrive", "start"):
        await client.post(f"{url}/{step}", json={})
    response = await client.post(
        f"{url}/complete", json={"total_revenue": "500", "labor_cost": "100"}
    )
    assert response.json()["status"] == "completed"
    return job


class TestCommissionEndpoints:
    """Calculate, list, approve and pay."""

    @pytest.mark.asyncio
    async def test_completion_books_commission(self, client, finished_job, sample_salesperson):
        response = await client.get(API, params={"job_id": finished_job["id"]})

        commissions = response.json()["commissions"]
        assert len(commissions) == 1
        assert commissions[0]["commission_amount"] == "60.00"
        assert commissions[0]["salesperson_id"] == str(sample_salesperson.id)

    @pytest.mark.asyncio
    async def test_calculate_is_idempotent(self, client, finished_job):
        first = await client.post(f"{API}/calculate/{finished_job['id']}")
        second = await client.post(f"{API}/calculate/{finished_job['id']}")

        assert first.status_code == 200
        assert first.json()["commission"]["id"] == second.json()["commission"]["id"]

    @pytest.mark.asyncio
    async def test_calculate_for_open_job_returns_null(self, client, sample_salesperson):
        job = (
            await client.post(
                "/api/v1/jobs",
                json={"customer_name": "Bob", "address": "5 Elm St", "service_type": "sewer_repair"},
            )
        ).json()

        response = await client.post(
            f"{API}/calculate/{job['id']}",
            json={"salesperson_id": str(sample_salesperson.id)},
        )

        assert response.status_code == 200
        assert response.json()["commission"] is None

    @pytest.mark.asyncio
    async def test_calculate_without_salesperson(self, client):
        job = (
            await client.post(
                "/api/v1/jobs",
                json={"customer_name": "Bob", "address": "5 Elm St", "service_type": "sewer_repair"},
            )
        ).json()

        response = await client.post(f"{API}/calculate/{job['id']}")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_approve_and_pay(self, client, finished_job, sample_salesperson):
        commission = (await client.get(API, params={"job_id": finished_job["id"]})).json()[
            "commissions"
        ][0]

        early = await client.post(f"{API}/{commission['id']}/pay")
        assert early.status_code == 400

        approved = await client.post(f"{API}/{commission['id']}/approve", json={"notes": "March"})
        assert approved.json()["status"] == "approved"
        paid = await client.post(f"{API}/{commission['id']}/pay")
        assert paid.json()["status"] == "paid"

        listed = await client.get(
            API, params={"salesperson_id": str(sample_salesperson.id), "status": "paid"}
        )
        assert [c["id"] for c in listed.json()["commissions"]] == [commission["id"]]

    @pytest.mark.asyncio
    async def test_list_needs_exactly_one_filter(self, client):
        assert (await client.get(API)).status_code == 400
        response = await client.get(API, params={"job_id": str(uuid4()), "salesperson_id": str(uuid4())})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_commission(self, client):
        response = await client.post(f"{API}/{uuid4()}/approve")

        assert response.status_code == 404
