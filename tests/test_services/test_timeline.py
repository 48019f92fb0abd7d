"""Tests for the timeline recorder and event payloads."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from field_crm.db.models.jobs import TimelineEventType
from field_crm.services.timeline import (
    CancelledPayload,
    CompletedPayload,
    NotePayload,
    TimelineRecorder,
    parse_payload,
)


class TestTimelineRecorder:
    """Tests for TimelineRecorder.record()."""

    @pytest.mark.asyncio
    async def test_payload_stored_as_json(self, db_session, sample_job):
        recorder = TimelineRecorder(db_session)

        event = await recorder.record(
            sample_job.id,
            TimelineEventType.COMPLETED,
            "Job completed",
            created_by="tech-7",
            payload=CompletedPayload(total_cost=Decimal("150.00"), profit=Decimal("350.00")),
        )

        assert event.sequence == 2
        assert event.created_by == "tech-7"
        assert event.metadata_json["total_cost"] == "150.00"
        payload = parse_payload(event.event_type, event.metadata_json)
        assert payload.profit == Decimal("350.00")

    @pytest.mark.asyncio
    async def test_empty_payload_stores_no_metadata(self, db_session, sample_job):
        event = await TimelineRecorder(db_session).record(
            sample_job.id, TimelineEventType.NOTE, "Gate code 1234", payload=NotePayload()
        )

        assert event.metadata_json is None

    @pytest.mark.asyncio
    async def test_wrong_payload_type_rejected(self, db_session, sample_job):
        with pytest.raises(ValueError):
            await TimelineRecorder(db_session).record(
                sample_job.id,
                TimelineEventType.NOTE,
                "oops",
                payload=CancelledPayload(reason="x", cancelled_by="y"),
            )

    @pytest.mark.asyncio
    async def test_unknown_event_type_rejected(self, db_session, sample_job):
        with pytest.raises(ValueError):
            await TimelineRecorder(db_session).record(sample_job.id, "teleported", "oops")


class TestPayloads:
    """Tests for payload parsing."""

    def test_unknown_type_or_missing_metadata(self):
        assert parse_payload("teleported", {"a": 1}) is None
        assert parse_payload(TimelineEventType.NOTE, None) is None

    def test_extra_fields_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_payload(TimelineEventType.CANCELLED, {"reason": "x", "cancelled_by": "y", "z": 1})
