"""Closest-technician dispatch.

Greedy nearest-neighbour selection over available technicians that have
reported a GPS fix. Selection does not reserve the technician; the
conditional claim made when the job goes en route is what serialises
competing dispatches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from field_crm.core.log import get_logger
from field_crm.core.retry import RetryConfig
from field_crm.db.models.communications import ContactAttemptModel, ContactStatus, ContactType
from field_crm.db.models.technicians import TechnicianLocationModel, TechnicianModel
from field_crm.db.repositories.technicians import (
    TechnicianLocationRepository,
    TechnicianRepository,
)
from field_crm.db.session import run_transaction
from field_crm.services.geo_service import GeoService, distance_meters, get_geo_service, meters_to_miles
from field_crm.services.notifications import NotificationService

log = get_logger(__name__)

GEOCODE_FAILED = "Could not geocode the provided address"
NO_LOCATED_TECHNICIANS = "No available technicians with location data found"


@dataclass
class TechnicianCandidate:
    """An available technician with their latest fix and distance to the job."""

    technician: TechnicianModel
    location: TechnicianLocationModel
    distance_meters: float

    @property
    def distance_miles(self) -> float:
        return meters_to_miles(self.distance_meters)


@dataclass
class DispatchResult:
    """Outcome of a dispatch request."""

    success: bool
    technician: TechnicianModel | None = None
    location: TechnicianLocationModel | None = None
    distance_meters: float | None = None
    distance_miles: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    email_sent: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "technician": self.technician.to_dict() if self.technician else None,
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "recorded_at": self.location.created_at.isoformat(),
            } if self.location else None,
            "distance_meters": (
                round(self.distance_meters, 1) if self.distance_meters is not None else None
            ),
            "distance_miles": self.distance_miles,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "email_sent": self.email_sent,
            "error": self.error,
        }


async def rank_available_technicians(
    session: AsyncSession,
    latitude: float,
    longitude: float,
) -> list[TechnicianCandidate]:
    """Available technicians with a fix, nearest first.

    Technicians who never reported a location are left out. The sort is
    stable, so equal distances keep directory order.
    """
    technicians = TechnicianRepository(session)
    locations = TechnicianLocationRepository(session)

    candidates = []
    for tech in await technicians.list_available():
        latest = await locations.get_latest(tech.id)
        if latest is None:
            continue
        candidates.append(
            TechnicianCandidate(
                technician=tech,
                location=latest,
                distance_meters=distance_meters(
                    latest.latitude, latest.longitude, latitude, longitude
                ),
            )
        )

    candidates.sort(key=lambda c: c.distance_meters)
    return candidates


class DispatchService:
    """Finds the closest available technician and notifies them.

    Usage:
        service = DispatchService()
        result = await service.dispatch_to_closest("12 Main St, Springfield")
        if result.success:
            print(result.technician.full_name, result.distance_miles)
    """

    def __init__(
        self,
        geo_service: GeoService | None = None,
        notification_service: NotificationService | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.geo = geo_service or get_geo_service()
        self.notifications = notification_service or NotificationService(
            session_factory=session_factory,
            retry_config=retry_config,
        )
        self.session_factory = session_factory
        self.retry_config = retry_config

    async def find_closest_available_technician(
        self,
        latitude: float,
        longitude: float,
    ) -> TechnicianCandidate | None:
        async def read(session: AsyncSession) -> list[TechnicianCandidate]:
            return await rank_available_technicians(session, latitude, longitude)

        ranked = await run_transaction(
            read,
            session_factory=self.session_factory,
            config=self.retry_config,
        )
        return ranked[0] if ranked else None

    async def dispatch_to_closest(
        self,
        address: str,
        job_id: UUID | None = None,
        customer_name: str | None = None,
        service_type: str | None = None,
    ) -> DispatchResult:
        """Pick the nearest located technician for ``address`` and email them.

        Geocoding and email failures come back in the result; only
        persistence failures raise.
        """
        location = await self.geo.geocode(address)
        if location is None:
            log.warning("Dispatch failed, address not geocoded", address=address)
            return DispatchResult(success=False, error=GEOCODE_FAILED)

        closest = await self.find_closest_available_technician(
            location.latitude, location.longitude
        )
        if closest is None:
            log.warning(
                "Dispatch failed, no located technicians",
                latitude=location.latitude,
                longitude=location.longitude,
            )
            return DispatchResult(
                success=False,
                latitude=location.latitude,
                longitude=location.longitude,
                error=NO_LOCATED_TECHNICIANS,
            )

        tech = closest.technician
        email_sent = False
        error_message = None
        if tech.email:
            result = await self.notifications.send_assignment_email(
                technician_name=tech.full_name,
                technician_email=tech.email,
                address=address,
                customer_name=customer_name,
                service_type=service_type,
                distance_miles=closest.distance_miles,
                job_id=job_id,
            )
            email_sent = result.success
            error_message = result.error_message
        else:
            error_message = "Technician has no email address"

        await self.notifications.record_attempt(
            ContactAttemptModel(
                job_id=job_id,
                contact_type=ContactType.EMAIL,
                status=ContactStatus.SENT if email_sent else ContactStatus.FAILED,
                subject=f"Job Assignment - {address}",
                content=(
                    f"Dispatched {tech.full_name} ({closest.distance_miles} miles away)"
                ),
                recipient_email=tech.email,
                failed_reason=None if email_sent else error_message,
            )
        )

        log.info(
            "Technician dispatched",
            technician_id=str(tech.id),
            job_id=str(job_id) if job_id else None,
            distance_meters=round(closest.distance_meters, 1),
            email_sent=email_sent,
        )
        return DispatchResult(
            success=True,
            technician=tech,
            location=closest.location,
            distance_meters=closest.distance_meters,
            distance_miles=closest.distance_miles,
            latitude=location.latitude,
            longitude=location.longitude,
            email_sent=email_sent,
        )
