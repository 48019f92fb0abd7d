"""Tests for database repositories."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from field_crm.core.exceptions import RecordNotFoundError
from field_crm.db.models.communications import NotificationModel
from field_crm.db.models.jobs import JobModel, JobStatus, TimelineEventType
from field_crm.db.models.technicians import TechnicianStatus
from field_crm.db.repositories import (
    JobRepository,
    NotificationRepository,
    TechnicianLocationRepository,
    TechnicianRepository,
    TimelineRepository,
)


def _job(**fields) -> JobModel:
    fields.setdefault("job_number", JobRepository.generate_job_number())
    fields.setdefault("customer_name", "Jane Customer")
    fields.setdefault("address", "100 Main St")
    fields.setdefault("service_type", "drain_cleaning")
    return JobModel(**fields)


# ============================================================================
# Job Repository Tests
# ============================================================================


class TestJobRepository:
    """Tests for JobRepository."""

    def test_job_number_format(self):
        number = JobRepository.generate_job_number(datetime(2026, 3, 9, tzinfo=timezone.utc))

        assert re.fullmatch(r"JOB-20260309-[0-9A-F]{6}", number)

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session):
        repo = JobRepository(db_session)

        created = await repo.create(_job())
        await db_session.commit()

        assert created.status == JobStatus.PENDING
        assert created.version == 1
        assert (await repo.get(created.id)).customer_name == "Jane Customer"

    @pytest.mark.asyncio
    async def test_get_or_raise_missing(self, db_session):
        with pytest.raises(RecordNotFoundError) as exc_info:
            await JobRepository(db_session).get_or_raise(uuid4())

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_version_increments_on_update(self, db_session):
        repo = JobRepository(db_session)
        job = await repo.create(_job())

        job.status = JobStatus.CANCELLED
        await db_session.flush()

        assert job.version == 2

    @pytest.mark.asyncio
    async def test_list_and_count_by_status(self, db_session, sample_technician):
        repo = JobRepository(db_session)
        await repo.create(_job())
        await repo.create(_job(status=JobStatus.ASSIGNED, assigned_technician_id=sample_technician.id))
        await repo.create(_job(status=JobStatus.ASSIGNED))
        await db_session.commit()

        assigned = await repo.list_jobs(status=JobStatus.ASSIGNED)
        mine = await repo.list_jobs(technician_id=sample_technician.id)

        assert len(assigned) == 2
        assert len(mine) == 1
        assert await repo.count_by_status() == {
            JobStatus.PENDING: 1,
            JobStatus.ASSIGNED: 2,
        }


# ============================================================================
# Timeline Repository Tests
# ============================================================================


class TestTimelineRepository:
    """Tests for TimelineRepository."""

    @pytest.mark.asyncio
    async def test_sequences_are_per_job(self, db_session):
        jobs = JobRepository(db_session)
        first = await jobs.create(_job())
        second = await jobs.create(_job())
        timeline = TimelineRepository(db_session)

        await timeline.append(first.id, TimelineEventType.CREATED, "created")
        await timeline.append(second.id, TimelineEventType.CREATED, "created")
        event = await timeline.append(first.id, TimelineEventType.NOTE, "gate code 1234")

        assert event.sequence == 2
        events = await timeline.list_for_job(first.id)
        assert [e.sequence for e in events] == [1, 2]
        assert [e.description for e in events] == ["created", "gate code 1234"]
        assert len(await timeline.list_for_job(second.id)) == 1


# ============================================================================
# Technician Repository Tests
# ============================================================================


class TestTechnicianRepository:
    """Tests for TechnicianRepository."""

    @pytest.mark.asyncio
    async def test_list_available(self, db_session, make_technician):
        await make_technician(full_name="Ready")
        await make_technician(full_name="Off", status=TechnicianStatus.OFF_DUTY)

        available = await TechnicianRepository(db_session).list_available()

        assert [t.full_name for t in available] == ["Ready"]

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, db_session, sample_technician):
        repo = TechnicianRepository(db_session)
        job_a, job_b = uuid4(), uuid4()

        assert await repo.claim_for_job(sample_technician.id, job_a) is True
        assert await repo.claim_for_job(sample_technician.id, job_b) is False
        # Holding job_a already
        assert await repo.claim_for_job(sample_technician.id, job_a) is True

        assert sample_technician.status == TechnicianStatus.BUSY
        assert sample_technician.current_job_id == job_a

    @pytest.mark.asyncio
    async def test_release_only_frees_matching_job(self, db_session, sample_technician):
        repo = TechnicianRepository(db_session)
        job_a = uuid4()
        await repo.claim_for_job(sample_technician.id, job_a)

        assert await repo.release(sample_technician, uuid4()) is False
        assert sample_technician.status == TechnicianStatus.BUSY

        assert await repo.release(sample_technician, job_a, completed=True) is True
        assert sample_technician.status == TechnicianStatus.AVAILABLE
        assert sample_technician.current_job_id is None
        assert sample_technician.completed_jobs_today == 1

    @pytest.mark.asyncio
    async def test_reset_daily_counters(self, db_session, make_technician):
        await make_technician(full_name="Worked", completed_jobs_today=3)
        await make_technician(full_name="Idle")
        repo = TechnicianRepository(db_session)

        assert await repo.reset_daily_counters() == 1
        await db_session.commit()
        db_session.expire_all()

        technicians = await repo.get_multi(limit=10)
        assert all(t.completed_jobs_today == 0 for t in technicians)


# ============================================================================
# Location Repository Tests
# ============================================================================


class TestTechnicianLocationRepository:
    """Tests for TechnicianLocationRepository."""

    @pytest.mark.asyncio
    async def test_no_fix_yet(self, db_session, sample_technician):
        repo = TechnicianLocationRepository(db_session)

        assert await repo.get_latest(sample_technician.id) is None
        assert await repo.list_for_technician(sample_technician.id) == []

    @pytest.mark.asyncio
    async def test_record_updates_cached_position(self, db_session, sample_technician):
        repo = TechnicianLocationRepository(db_session)

        location = await repo.record(
            sample_technician, 39.78, -89.65, accuracy=5.0, battery_level=80
        )

        assert location.accuracy == 5.0
        assert sample_technician.last_location_lat == 39.78
        assert sample_technician.last_location_lng == -89.65
        assert sample_technician.last_location_update == location.created_at

    @pytest.mark.asyncio
    async def test_latest_and_history_newest_first(self, db_session, sample_technician):
        repo = TechnicianLocationRepository(db_session)
        await repo.record(sample_technician, 1.0, 1.0)
        await repo.record(sample_technician, 2.0, 2.0)
        await repo.record(sample_technician, 3.0, 3.0)

        latest = await repo.get_latest(sample_technician.id)
        history = await repo.list_for_technician(sample_technician.id, limit=2)

        assert latest.latitude == 3.0
        assert [loc.latitude for loc in history] == [3.0, 2.0]


# ============================================================================
# Notification Repository Tests
# ============================================================================


class TestNotificationRepository:
    """Tests for NotificationRepository."""

    @pytest.mark.asyncio
    async def test_unread_filter(self, db_session):
        repo = NotificationRepository(db_session)
        for title, is_read in (("First", True), ("Second", False)):
            await repo.create(
                NotificationModel(
                    user_id="user-tom",
                    notification_type="job_assigned",
                    title=title,
                    message="You have been assigned",
                    is_read=is_read,
                )
            )

        assert len(await repo.list_for_user("user-tom")) == 2
        unread = await repo.list_for_user("user-tom", unread_only=True)
        assert [n.title for n in unread] == ["Second"]
        assert await repo.list_for_user("user-other") == []
