"""Geographic service for dispatch.

Provides:
- Address geocoding (Nominatim or Google) that fails soft
- Great-circle distance between two points, in meters
- Arrival geofence check against a job site

Distances are meters everywhere inside the system; convert with
``meters_to_miles`` only when presenting to people.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt
from typing import Any

import httpx

from field_crm.config import GeocodingSettings, get_settings
from field_crm.core.exceptions import ExternalServiceDegraded, wrap_exception
from field_crm.core.log import get_logger
from field_crm.core.retry import CircuitBreaker

log = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_000
METERS_PER_MILE = 1609.344
DEFAULT_ARRIVAL_RADIUS_METERS = 150.0


@dataclass
class GeoLocation:
    """Geographic location with coordinates."""

    latitude: float
    longitude: float
    formatted_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "formatted_address": self.formatted_address,
        }


@dataclass
class RadiusCheck:
    """Result of an arrival geofence check."""

    is_within: bool
    distance: int  # meters, rounded


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance between two points in meters (haversine).

    Symmetric, zero for identical points, never negative.
    """
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(min(1.0, a)))

    return EARTH_RADIUS_METERS * c


def within_radius(
    tech_lat: float,
    tech_lng: float,
    job_lat: float,
    job_lng: float,
    radius_meters: float = DEFAULT_ARRIVAL_RADIUS_METERS,
) -> RadiusCheck:
    """Check whether a technician is within ``radius_meters`` of a job site."""
    # Compare the exact distance; rounding is for display only
    distance = distance_meters(tech_lat, tech_lng, job_lat, job_lng)
    return RadiusCheck(is_within=distance <= radius_meters, distance=round(distance))


def meters_to_miles(meters: float, ndigits: int = 1) -> float:
    return round(meters / METERS_PER_MILE, ndigits)


class GeoService:
    """Address geocoding against a configured provider.

    ``geocode`` never raises: any provider, network or parse problem is
    logged and reported as ``None`` so callers can carry on without
    coordinates. Results are not cached.

    Usage:
        geo = GeoService()
        location = await geo.geocode("123 Main St, Springfield")
        if location:
            meters = distance_meters(location.latitude, location.longitude, lat, lng)
    """

    def __init__(
        self,
        settings: GeocodingSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize geo service.

        Args:
            settings: Provider configuration (defaults to app settings)
            transport: Optional httpx transport, used by tests
        """
        self.settings = settings or get_settings().geocoding
        self._transport = transport
        self._breaker = CircuitBreaker(
            "geocoder",
            failure_threshold=self.settings.failure_threshold,
            reset_timeout=self.settings.reset_timeout,
        )

    @property
    def provider(self) -> str:
        return self.settings.provider.lower()

    async def geocode(self, address: str) -> GeoLocation | None:
        """Resolve a free-text address to coordinates.

        Returns:
            GeoLocation for the best match, or None if unavailable
        """
        if not address or not address.strip():
            return None

        if self.provider == "disabled":
            return None

        if self.provider == "google" and not self.settings.api_key:
            log.warning("Google geocoding API key not configured")
            return None

        if not self._breaker.allow_request():
            log.warning("Geocoder circuit open, skipping lookup", provider=self.provider)
            return None

        try:
            location = await self._lookup(address)
        except ExternalServiceDegraded as e:
            self._breaker.record_failure()
            log.warning("Geocoder degraded", provider=self.provider, error=str(e))
            return None

        self._breaker.record_success()

        if location is None:
            log.info("Address not found by geocoder", provider=self.provider)
        return location

    async def _lookup(self, address: str) -> GeoLocation | None:
        """Query the provider once.

        Raises:
            ExternalServiceDegraded: Network, HTTP or response-format failure
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                transport=self._transport,
            ) as client:
                if self.provider == "google":
                    return await self._geocode_google(client, address)
                return await self._geocode_nominatim(client, address)
        except httpx.HTTPError as e:
            raise wrap_exception(
                e, ExternalServiceDegraded, "Geocoding request failed", provider=self.provider
            ) from e
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
            raise wrap_exception(
                e, ExternalServiceDegraded, "Geocoding response unreadable", provider=self.provider
            ) from e

    async def _geocode_nominatim(
        self,
        client: httpx.AsyncClient,
        address: str,
    ) -> GeoLocation | None:
        response = await client.get(
            self.settings.nominatim_url,
            params={"format": "json", "q": address, "limit": 1},
            headers={"User-Agent": self.settings.user_agent},
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ExternalServiceDegraded(
                "Nominatim returned an unexpected body", details={"body_type": type(data).__name__}
            )

        if not data:
            return None

        first = data[0]
        return GeoLocation(
            latitude=float(first["lat"]),
            longitude=float(first["lon"]),
            formatted_address=first.get("display_name"),
        )

    async def _geocode_google(
        self,
        client: httpx.AsyncClient,
        address: str,
    ) -> GeoLocation | None:
        response = await client.get(
            self.settings.google_url,
            params={"address": address, "key": self.settings.api_key},
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ExternalServiceDegraded(
                "Google geocoding returned an unexpected body",
                details={"body_type": type(data).__name__},
            )

        status = data.get("status")
        if status != "OK" or not data.get("results"):
            if status not in ("OK", "ZERO_RESULTS"):
                raise ExternalServiceDegraded(
                    "Google geocoding returned error status",
                    details={"status": status, "error": data.get("error_message")},
                )
            return None

        result = data["results"][0]
        location = result["geometry"]["location"]
        return GeoLocation(
            latitude=float(location["lat"]),
            longitude=float(location["lng"]),
            formatted_address=result.get("formatted_address"),
        )


_geo_service: GeoService | None = None


def get_geo_service() -> GeoService:
    """Get the shared geo service instance."""
    global _geo_service
    if _geo_service is None:
        _geo_service = GeoService()
    return _geo_service


def reset_geo_service() -> None:
    """Reset the geo service (for testing)."""
    global _geo_service
    _geo_service = None
