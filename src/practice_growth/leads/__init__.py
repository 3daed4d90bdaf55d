"""Lead capture, scoring, ranking, assignment and status management."""

from .manager import (
    BulkScoreResult,
    CaptureResult,
    EscalationResult,
    LeadManager,
    RankedLead,
    ScoreOutcome,
)
from .schemas import (
    ConversionEvent,
    EngagementEvent,
    LeadCaptureEvent,
    StaffRosterEntry,
    StatusChangeCommand,
    parse_input,
)

__all__ = [
    "BulkScoreResult",
    "CaptureResult",
    "EscalationResult",
    "LeadManager",
    "RankedLead",
    "ScoreOutcome",
    "ConversionEvent",
    "EngagementEvent",
    "LeadCaptureEvent",
    "StaffRosterEntry",
    "StatusChangeCommand",
    "parse_input",
]
