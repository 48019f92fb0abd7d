"""Typed timeline events.

Each event type has a fixed payload shape, validated before it is
written. Stored metadata is the payload's JSON form.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from field_crm.core.log import get_logger
from field_crm.db.models.jobs import JobTimelineEventModel, TimelineEventType
from field_crm.db.repositories.jobs import TimelineRepository

log = get_logger(__name__)


class EventPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class CreatedPayload(EventPayload):
    job_number: str
    service_type: str
    geocoded: bool


class AssignedPayload(EventPayload):
    technician_id: str
    dispatcher_id: str | None = None
    method: Literal["dispatcher", "claim", "auto"] = "dispatcher"
    previous_technician_id: str | None = None


class TechnicianPayload(EventPayload):
    """Payload for confirm, en-route and start: who acted."""

    technician_id: str | None = None


class ArrivedPayload(EventPayload):
    latitude: float | None = None
    longitude: float | None = None
    arrival_verified: bool | None = None
    arrival_distance: int | None = None


class CompletedPayload(EventPayload):
    total_cost: Decimal | None = None
    total_revenue: Decimal | None = None
    profit: Decimal | None = None
    technician_id: str | None = None


class CancelledPayload(EventPayload):
    reason: str
    cancelled_by: str
    technician_released: bool = False


class QuoteSentPayload(EventPayload):
    quote_reference: str


class NotePayload(EventPayload):
    pass


PAYLOAD_TYPES: dict[str, type[EventPayload]] = {
    TimelineEventType.CREATED: CreatedPayload,
    TimelineEventType.ASSIGNED: AssignedPayload,
    TimelineEventType.CONFIRMED: TechnicianPayload,
    TimelineEventType.EN_ROUTE: TechnicianPayload,
    TimelineEventType.ARRIVED: ArrivedPayload,
    TimelineEventType.STARTED: TechnicianPayload,
    TimelineEventType.COMPLETED: CompletedPayload,
    TimelineEventType.CANCELLED: CancelledPayload,
    TimelineEventType.NOTE: NotePayload,
    TimelineEventType.QUOTE_SENT: QuoteSentPayload,
}


def parse_payload(event_type: str, metadata: dict[str, Any] | None) -> EventPayload | None:
    """Rebuild the typed payload of a stored event."""
    payload_type = PAYLOAD_TYPES.get(event_type)
    if payload_type is None or metadata is None:
        return None
    return payload_type.model_validate(metadata)


class TimelineRecorder:
    """Writes timeline events for a job within the caller's unit of work."""

    def __init__(self, session: AsyncSession):
        self.repo = TimelineRepository(session)

    async def record(
        self,
        job_id: UUID,
        event_type: str,
        description: str,
        *,
        created_by: str | None = None,
        payload: EventPayload | None = None,
    ) -> JobTimelineEventModel:
        """Append one event.

        Raises:
            ValueError: Unknown event type, or payload of the wrong shape
        """
        expected = PAYLOAD_TYPES.get(event_type)
        if expected is None:
            raise ValueError(f"Unknown timeline event type: {event_type}")
        if payload is not None and not isinstance(payload, expected):
            raise ValueError(
                f"{event_type} events take {expected.__name__}, got {type(payload).__name__}"
            )

        metadata = payload.model_dump(mode="json") if payload is not None else None
        event = await self.repo.append(
            job_id,
            event_type,
            description,
            created_by=created_by,
            metadata=metadata or None,
        )

        log.debug(
            "Timeline event recorded",
            job_id=str(job_id),
            event_type=event_type,
            sequence=event.sequence,
        )
        return event

    async def list_for_job(self, job_id: UUID | str) -> Sequence[JobTimelineEventModel]:
        return await self.repo.list_for_job(job_id)
