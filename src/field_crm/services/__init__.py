"""Business services for field-crm.

Contains the job dispatch and lifecycle logic:
- JobLifecycleService: Job state machine and timeline
- DispatchService: Closest-available-technician selection
- GeoService: Address geocoding and distance checks
- CommissionService: Salesperson commissions on completed jobs
- NotificationService: Best-effort email/SMS after commit
"""

from field_crm.services.commissions import CommissionService
from field_crm.services.costs import CostSummary, CostUpdate, net_profit, reconcile
from field_crm.services.dispatch import DispatchResult, DispatchService, TechnicianCandidate
from field_crm.services.geo_service import (
    GeoLocation,
    GeoService,
    RadiusCheck,
    distance_meters,
    get_geo_service,
    meters_to_miles,
    within_radius,
)
from field_crm.services.job_lifecycle import (
    ALLOWED_PREDECESSORS,
    JobDraft,
    JobLifecycleService,
    locate_draft,
)
from field_crm.services.notifications import Notice, NoticeKind, NotificationService
from field_crm.services.timeline import TimelineRecorder, parse_payload

__all__ = [
    # Lifecycle
    "ALLOWED_PREDECESSORS",
    "JobDraft",
    "JobLifecycleService",
    "locate_draft",
    "TimelineRecorder",
    "parse_payload",
    # Dispatch & Geo
    "DispatchResult",
    "DispatchService",
    "TechnicianCandidate",
    "GeoLocation",
    "GeoService",
    "RadiusCheck",
    "distance_meters",
    "get_geo_service",
    "meters_to_miles",
    "within_radius",
    # Money
    "CommissionService",
    "CostSummary",
    "CostUpdate",
    "net_profit",
    "reconcile",
    # Notifications
    "Notice",
    "NoticeKind",
    "NotificationService",
]
