"""Database models."""

from practice_scheduler.models.base import metadata
from practice_scheduler.models.holds import appointment_holds, resource_locks
from practice_scheduler.models.organizations import organization_settings, organizations
from practice_scheduler.models.patients import patient_session_specs, patients
from practice_scheduler.models.rooms import rooms
from practice_scheduler.models.rules import rules
from practice_scheduler.models.schedules import schedules, sessions
from practice_scheduler.models.staff import staff, staff_availability

__all__ = [
    "appointment_holds",
    "metadata",
    "organization_settings",
    "organizations",
    "patient_session_specs",
    "patients",
    "resource_locks",
    "rooms",
    "rules",
    "schedules",
    "sessions",
    "staff",
    "staff_availability",
]
