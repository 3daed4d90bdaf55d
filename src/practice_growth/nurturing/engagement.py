"""Engagement scoring and the per-event escalation rules."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

REPLY_URGENCY_BUMP = 25
CLICK_URGENCY_BUMP = 15
CLICK_ESCALATION_THRESHOLD = 2


class EngagementType(Enum):
    """Interaction events reported by the delivery side."""

    EMAIL_OPENED = "email_opened"
    LINK_CLICKED = "link_clicked"
    REPLY_RECEIVED = "reply_received"
    SMS_REPLY = "sms_reply"
    OPT_OUT = "opt_out"

    @property
    def is_reply(self) -> bool:
        return self in (EngagementType.REPLY_RECEIVED, EngagementType.SMS_REPLY)


def engagement_score(emails_opened: int, links_clicked: int, replies: int, step_number: int = 0) -> int:
    """Bounded 0-100 engagement, with diminishing returns per channel."""
    score = min(30, emails_opened * 10)
    score += min(40, links_clicked * 15)
    score += min(30, replies * 20)

    # Fast responders: real engagement within the first two steps
    if step_number <= 2 and score >= 30:
        score += 10

    return min(100, score)


@dataclass
class EngagementEffect:
    """What an engagement event does to a lead, before it is applied."""

    urgency_delta: int = 0
    force_hot: bool = False
    should_escalate: bool = False
    escalation_reason: Optional[str] = None
    requires_human_follow_up: bool = False
    opt_out: bool = False


def evaluate_event(event: EngagementType, sequence_links_clicked: int) -> EngagementEffect:
    """Rules for a single event.

    ``sequence_links_clicked`` is the click count within the active sequence
    after this event has been counted.
    """
    if event is EngagementType.OPT_OUT:
        return EngagementEffect(opt_out=True)

    if event.is_reply:
        return EngagementEffect(
            urgency_delta=REPLY_URGENCY_BUMP,
            force_hot=True,
            should_escalate=True,
            escalation_reason="Lead replied to nurture message",
            requires_human_follow_up=True,
        )

    if event is EngagementType.LINK_CLICKED and sequence_links_clicked >= CLICK_ESCALATION_THRESHOLD:
        return EngagementEffect(
            urgency_delta=CLICK_URGENCY_BUMP,
            should_escalate=True,
            escalation_reason=f"Clicked {sequence_links_clicked} links in current sequence",
        )

    return EngagementEffect()
