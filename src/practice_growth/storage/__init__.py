"""Storage layer for leads, activity history and staff."""

from .database import LeadDatabase, normalize_phone
from .models import (
    Lead,
    LeadStatus,
    LeadSource,
    ActivityEntry,
    ActivityType,
    Actor,
    ActorKind,
    StaffMember,
    StaffRole,
)

__all__ = [
    "LeadDatabase",
    "normalize_phone",
    "Lead",
    "LeadStatus",
    "LeadSource",
    "ActivityEntry",
    "ActivityType",
    "Actor",
    "ActorKind",
    "StaffMember",
    "StaffRole",
]
