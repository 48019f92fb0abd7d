"""Repository pattern implementations for data access."""
from field_crm.db.repositories.base import BaseRepository, as_uuid
from field_crm.db.repositories.jobs import JobRepository, TimelineRepository
from field_crm.db.repositories.technicians import (
    TechnicianLocationRepository,
    TechnicianRepository,
)
from field_crm.db.repositories.sales import CommissionRepository, SalespersonRepository
from field_crm.db.repositories.communications import (
    ContactAttemptRepository,
    NotificationRepository,
)

__all__ = [
    "BaseRepository",
    "as_uuid",
    "JobRepository",
    "TimelineRepository",
    "TechnicianRepository",
    "TechnicianLocationRepository",
    "SalespersonRepository",
    "CommissionRepository",
    "ContactAttemptRepository",
    "NotificationRepository",
]
