"""Data models for lead storage."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class LeadStatus(Enum):
    """Lifecycle status of a lead."""

    NEW = "new"
    SCORING = "scoring"
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"
    NURTURING = "nurturing"
    READY = "ready"
    CONVERTED = "converted"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LeadStatus.CONVERTED, LeadStatus.LOST})
ACTIVE_STATUSES = frozenset(s for s in LeadStatus if s not in TERMINAL_STATUSES)


class LeadSource(Enum):
    """How a lead reached the practice."""

    WEBSITE = "website"
    PHONE_CALL = "phone_call"
    WALK_IN = "walk_in"
    REFERRAL = "referral"
    PROVIDER_REFERRAL = "provider_referral"
    GOOGLE_SEARCH = "google_search"
    GOOGLE_ADS = "google_ads"
    FACEBOOK_ADS = "facebook_ads"
    SOCIAL_MEDIA = "social_media"
    INSURANCE_DIRECTORY = "insurance_directory"
    OTHER = "other"


class StaffRole(Enum):
    """Roster roles."""

    STAFF = "staff"
    PROVIDER = "provider"
    ADMIN = "admin"
    FRONT_DESK = "front_desk"


ASSIGNABLE_ROLES = frozenset({StaffRole.STAFF, StaffRole.PROVIDER, StaffRole.ADMIN})


class ActivityType(Enum):
    """Types of activity-log entries."""

    LEAD_CREATED = "lead_created"
    LEAD_MERGED = "lead_merged"
    SCORE_UPDATED = "score_updated"
    STATUS_CHANGED = "status_changed"
    LEAD_REACTIVATED = "lead_reactivated"
    LEAD_ASSIGNED = "lead_assigned"
    LEAD_ESCALATED = "lead_escalated"
    NURTURE_STEP_SCHEDULED = "nurture_step_scheduled"
    NURTURE_STEP_DISPATCHED = "nurture_step_dispatched"
    NURTURE_COMPLETED = "nurture_completed"
    NURTURE_PAUSED = "nurture_paused"
    NURTURE_RESUMED = "nurture_resumed"
    NURTURE_ENGAGEMENT = "nurture_engagement"
    LEAD_OPTED_OUT = "lead_opted_out"
    LEAD_CONVERTED = "lead_converted"
    RESPONSE_EMAIL_REPLY = "response_email_reply"
    RESPONSE_SMS_REPLY = "response_sms_reply"
    RESPONSE_CALL_REQUEST = "response_call_request"
    RESPONSE_BOOKING_ATTEMPT = "response_booking_attempt"


class ActorKind(Enum):
    """Who performed an audited action."""

    SYSTEM = "system"
    AUTOMATED_AGENT = "agent"
    HUMAN_USER = "user"


@dataclass(frozen=True)
class Actor:
    """Audit attribution for a mutation.

    Serialized as ``system``, ``agent`` or ``user:<id>``; nothing else parses.
    """

    kind: ActorKind = ActorKind.SYSTEM
    user_id: Optional[str] = None

    def __post_init__(self):
        if self.kind is ActorKind.HUMAN_USER and not self.user_id:
            raise ValueError("Human actors require a user id")
        if self.kind is not ActorKind.HUMAN_USER and self.user_id is not None:
            raise ValueError(f"{self.kind.value} actors do not carry a user id")

    @classmethod
    def system(cls) -> "Actor":
        return cls(ActorKind.SYSTEM)

    @classmethod
    def agent(cls) -> "Actor":
        return cls(ActorKind.AUTOMATED_AGENT)

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(ActorKind.HUMAN_USER, user_id)

    @classmethod
    def parse(cls, value: str) -> "Actor":
        if value == ActorKind.SYSTEM.value:
            return cls.system()
        if value == ActorKind.AUTOMATED_AGENT.value:
            return cls.agent()
        if value.startswith("user:") and len(value) > len("user:"):
            return cls.user(value[len("user:"):])
        raise ValueError(f"Unrecognized actor: {value!r}")

    @property
    def is_automated(self) -> bool:
        return self.kind is not ActorKind.HUMAN_USER

    def __str__(self) -> str:
        if self.kind is ActorKind.HUMAN_USER:
            return f"user:{self.user_id}"
        return self.kind.value


@dataclass
class Lead:
    """A prospective patient tracked by the growth engine."""

    id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None

    source: LeadSource = LeadSource.WEBSITE
    source_detail: Optional[str] = None
    campaign_id: Optional[str] = None
    notes: Optional[str] = None

    # Website behavior
    website_visits: int = 0
    page_views: int = 0
    time_on_site_seconds: int = 0
    form_abandoned: bool = False
    last_page_viewed: Optional[str] = None

    # Message engagement
    emails_opened: int = 0
    links_clicked: int = 0
    replies_received: int = 0
    sequence_links_clicked: int = 0

    # Derived scores
    quality_score: int = 0
    urgency_score: int = 0
    conversion_probability: float = 0.0
    score_factors: Dict[str, int] = field(default_factory=dict)
    intent_signals: List[str] = field(default_factory=list)
    score_history: List[Dict[str, Any]] = field(default_factory=list)
    recommendation: Optional[str] = None
    priority_rank: Optional[int] = None

    status: LeadStatus = LeadStatus.NEW
    next_action: Optional[str] = None
    next_action_at: Optional[datetime] = None

    # Nurture pointers
    active_sequence_id: Optional[str] = None
    current_step_number: Optional[int] = None

    assigned_staff_id: Optional[str] = None
    opted_out: bool = False

    converted_customer_id: Optional[str] = None
    conversion_value: Optional[float] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_scored_at: Optional[datetime] = None
    nurture_started_at: Optional[datetime] = None
    converted_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Get best available name for display."""
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email or self.phone or f"Lead #{self.id}"

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def days_since_created(self, now: datetime) -> int:
        """Whole days elapsed since capture."""
        return max(0, (now - self.created_at) // timedelta(days=1))

    def is_score_fresh(self, now: datetime, freshness_hours: int) -> bool:
        """Whether stored scores may be reused without recomputation."""
        if self.last_scored_at is None:
            return False
        return now - self.last_scored_at < timedelta(hours=freshness_hours)


@dataclass
class ActivityEntry:
    """Append-only audit record of something that happened to a lead."""

    lead_id: int
    activity_type: ActivityType
    description: str
    actor: Actor = field(default_factory=Actor.system)
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class StaffMember:
    """A roster entry eligible (or not) to own leads."""

    id: str
    name: str = ""
    role: StaffRole = StaffRole.STAFF
    is_active: bool = True
    email: Optional[str] = None

    @property
    def can_own_leads(self) -> bool:
        return self.is_active and self.role in ASSIGNABLE_ROLES
