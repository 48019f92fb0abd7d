"""ORM models for Field CRM.

All models are imported here so they register with Base.metadata.
"""
from field_crm.db.models.jobs import (
    COST_FIELDS,
    JobModel,
    JobPriority,
    JobStatus,
    JobTimelineEventModel,
    TimelineEventType,
)
from field_crm.db.models.technicians import (
    TechnicianLocationModel,
    TechnicianModel,
    TechnicianStatus,
)
from field_crm.db.models.sales import (
    CommissionStatus,
    SalesCommissionModel,
    SalespersonModel,
)
from field_crm.db.models.communications import (
    ContactAttemptModel,
    ContactStatus,
    ContactType,
    NotificationModel,
)

__all__ = [
    # Jobs
    "COST_FIELDS",
    "JobModel",
    "JobPriority",
    "JobStatus",
    "JobTimelineEventModel",
    "TimelineEventType",
    # Technicians
    "TechnicianLocationModel",
    "TechnicianModel",
    "TechnicianStatus",
    # Sales
    "CommissionStatus",
    "SalesCommissionModel",
    "SalespersonModel",
    # Communications
    "ContactAttemptModel",
    "ContactStatus",
    "ContactType",
    "NotificationModel",
]
