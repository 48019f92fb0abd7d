"""Tests for geocoding and distance helpers."""

from __future__ import annotations

import httpx
import pytest

from field_crm.config import GeocodingSettings
from field_crm.core.exceptions import ExternalServiceDegraded
from field_crm.services.geo_service import (
    GeoService,
    distance_meters,
    meters_to_miles,
    within_radius,
)


class TestDistance:
    """Tests for haversine distance and radius checks."""

    def test_same_point_is_zero(self):
        assert distance_meters(39.78, -89.65, 39.78, -89.65) == 0

    def test_known_distance(self):
        # Springfield IL to Chicago IL, roughly 280 km
        meters = distance_meters(39.7817, -89.6501, 41.8781, -87.6298)
        assert 280_000 < meters < 290_000

    @pytest.mark.parametrize("radius", [0, 1, 150, 10_000])
    def test_point_within_any_radius_of_itself(self, radius):
        check = within_radius(39.7817, -89.6501, 39.7817, -89.6501, radius)

        assert check.is_within is True
        assert check.distance == 0

    def test_outside_radius(self):
        # About 0.01 degrees of latitude, ~1.1 km
        check = within_radius(39.7917, -89.6501, 39.7817, -89.6501, 150)

        assert check.is_within is False
        assert 1_100 <= check.distance <= 1_115

    def test_boundary_uses_exact_distance(self):
        meters_per_degree = 111_194.93  # one degree of latitude at R = 6,371 km

        just_outside = within_radius(0, 0, 150.4 / meters_per_degree, 0, 150)
        just_inside = within_radius(0, 0, 149.6 / meters_per_degree, 0, 150)

        assert just_outside.is_within is False
        assert just_outside.distance == 150
        assert just_inside.is_within is True
        assert just_inside.distance == 150

    def test_meters_to_miles(self):
        assert meters_to_miles(1609.344) == 1.0
        assert meters_to_miles(8046.72) == 5.0


def _service(handler, **settings) -> GeoService:
    return GeoService(
        settings=GeocodingSettings(**settings),
        transport=httpx.MockTransport(handler),
    )


class TestGeoService:
    """Tests for GeoService.geocode()."""

    @pytest.mark.asyncio
    async def test_nominatim_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["agent"] = request.headers.get("User-Agent")
            return httpx.Response(
                200,
                json=[{"lat": "39.7817", "lon": "-89.6501", "display_name": "Springfield"}],
            )

        geo = _service(handler, provider="nominatim", user_agent="field-crm-test")
        location = await geo.geocode("100 Main St, Springfield")

        assert location is not None
        assert location.latitude == pytest.approx(39.7817)
        assert location.longitude == pytest.approx(-89.6501)
        assert seen["params"]["q"] == "100 Main St, Springfield"
        assert seen["params"]["limit"] == "1"
        assert seen["agent"] == "field-crm-test"

    @pytest.mark.asyncio
    async def test_nominatim_no_results(self):
        geo = _service(lambda request: httpx.Response(200, json=[]), provider="nominatim")

        assert await geo.geocode("nowhere") is None

    @pytest.mark.asyncio
    async def test_google_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["key"] == "test-key"
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [
                        {
                            "formatted_address": "100 Main St",
                            "geometry": {"location": {"lat": 39.78, "lng": -89.65}},
                        }
                    ],
                },
            )

        geo = _service(handler, provider="google", api_key="test-key")
        location = await geo.geocode("100 Main St")

        assert location is not None
        assert location.formatted_address == "100 Main St"

    @pytest.mark.asyncio
    async def test_google_error_status(self):
        geo = _service(
            lambda request: httpx.Response(200, json={"status": "REQUEST_DENIED", "results": []}),
            provider="google",
            api_key="bad-key",
        )

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_google_without_key_skips_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        geo = _service(handler, provider="google", api_key="")

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_disabled_provider(self):
        def handler(request):
            raise AssertionError("no request expected")

        geo = _service(handler, provider="disabled")

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_blank_address(self):
        geo = _service(lambda request: httpx.Response(200, json=[]), provider="nominatim")

        assert await geo.geocode("   ") is None

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        geo = _service(lambda request: httpx.Response(500), provider="nominatim")

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        geo = _service(handler, provider="nominatim")

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_malformed_response_returns_none(self):
        geo = _service(
            lambda request: httpx.Response(200, json=[{"latitude": 1}]),
            provider="nominatim",
        )

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "provider, body",
        [
            ("google", [1, 2]),
            ("google", "OK"),
            ("google", {"status": "OK", "results": [[1]]}),
            ("nominatim", {"lat": "1", "lon": "2"}),
            ("nominatim", [1, 2]),
        ],
    )
    async def test_unexpected_body_shape_returns_none(self, provider, body):
        geo = _service(
            lambda request: httpx.Response(200, json=body),
            provider=provider,
            api_key="k",
        )

        assert await geo.geocode("100 Main St") is None

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        geo = _service(handler, provider="nominatim", failure_threshold=2, reset_timeout=60)

        for _ in range(4):
            assert await geo.geocode("100 Main St") is None

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_lookup_failure_is_degraded_error(self):
        geo = _service(lambda request: httpx.Response(500), provider="nominatim")

        with pytest.raises(ExternalServiceDegraded) as exc_info:
            await geo._lookup("100 Main St")

        assert exc_info.value.details == {"provider": "nominatim"}
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_google_error_status_counts_as_failure(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT", "results": []})

        geo = _service(handler, provider="google", api_key="k", failure_threshold=1)

        assert await geo.geocode("100 Main St") is None
        assert await geo.geocode("100 Main St") is None
        assert len(calls) == 1
