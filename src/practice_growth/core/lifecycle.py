"""Lead lifecycle state machine.

Automatic classification only touches leads that have not been classified
yet (NEW or SCORING). Every other move is requested with a trigger and
checked against the transition table, so the scorer can never silently
override a manual decision.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from ..exceptions import InvalidStateError
from ..storage.models import (
    ACTIVE_STATUSES,
    Actor,
    Lead,
    LeadStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

UNCLASSIFIED_STATUSES = frozenset({LeadStatus.NEW, LeadStatus.SCORING})
ALL_STATUSES = frozenset(LeadStatus)


class TransitionTrigger(Enum):
    """What caused a status change."""

    SCORE_CLASSIFICATION = "score_classification"
    NURTURE_START = "nurture_start"
    NURTURE_COMPLETE = "nurture_complete"
    NURTURE_PAUSE = "nurture_pause"
    NURTURE_RESUME = "nurture_resume"
    POSITIVE_RESPONSE = "positive_response"
    REPLY_ESCALATION = "reply_escalation"
    ESCALATION = "escalation"
    OPT_OUT = "opt_out"
    CONVERSION = "conversion"
    MANUAL = "manual"


# trigger -> (allowed source states, allowed target states)
TRANSITIONS: Dict[TransitionTrigger, Tuple[FrozenSet[LeadStatus], FrozenSet[LeadStatus]]] = {
    TransitionTrigger.SCORE_CLASSIFICATION: (
        UNCLASSIFIED_STATUSES,
        frozenset({LeadStatus.HOT, LeadStatus.WARM, LeadStatus.COLD}),
    ),
    TransitionTrigger.NURTURE_START: (ACTIVE_STATUSES, frozenset({LeadStatus.NURTURING})),
    TransitionTrigger.NURTURE_COMPLETE: (
        frozenset({LeadStatus.NURTURING}),
        frozenset({LeadStatus.HOT, LeadStatus.WARM}),
    ),
    TransitionTrigger.NURTURE_PAUSE: (frozenset({LeadStatus.NURTURING}), frozenset({LeadStatus.WARM})),
    TransitionTrigger.NURTURE_RESUME: (ACTIVE_STATUSES, frozenset({LeadStatus.NURTURING})),
    TransitionTrigger.POSITIVE_RESPONSE: (ACTIVE_STATUSES, frozenset({LeadStatus.READY, LeadStatus.HOT})),
    TransitionTrigger.REPLY_ESCALATION: (ACTIVE_STATUSES, frozenset({LeadStatus.HOT})),
    TransitionTrigger.ESCALATION: (ACTIVE_STATUSES, frozenset({LeadStatus.HOT})),
    TransitionTrigger.OPT_OUT: (ALL_STATUSES, frozenset({LeadStatus.LOST})),
    TransitionTrigger.CONVERSION: (
        ALL_STATUSES - {LeadStatus.CONVERTED},
        frozenset({LeadStatus.CONVERTED}),
    ),
    TransitionTrigger.MANUAL: (
        ALL_STATUSES,
        ALL_STATUSES - {LeadStatus.CONVERTED, LeadStatus.READY, LeadStatus.NURTURING},
    ),
}


@dataclass(frozen=True)
class StatusChange:
    """An audited status transition."""

    old_status: LeadStatus
    new_status: LeadStatus
    trigger: TransitionTrigger
    actor: Actor

    @property
    def is_reactivation(self) -> bool:
        return self.old_status.is_terminal and not self.new_status.is_terminal


def classify(quality: int, urgency: int, probability: float, days_since_created: int) -> Optional[LeadStatus]:
    """Classification a freshly scored lead qualifies for, if any."""
    if quality >= 70 and urgency >= 60:
        return LeadStatus.HOT
    if quality >= 50 or probability >= 0.4:
        return LeadStatus.WARM
    if quality < 30 and days_since_created > 14:
        return LeadStatus.COLD
    return None


def can_transition(current: LeadStatus, target: LeadStatus, trigger: TransitionTrigger) -> bool:
    sources, targets = TRANSITIONS[trigger]
    return current in sources and target in targets


def transition(
    lead: Lead,
    target: LeadStatus,
    trigger: TransitionTrigger,
    actor: Optional[Actor] = None,
    now: Optional[datetime] = None,
) -> Optional[StatusChange]:
    """Move a lead to ``target``, enforcing the transition table.

    Returns None when the lead is already in the target state. ``now``
    stamps ``updated_at``; callers with an injected clock pass it in.
    """
    actor = actor or Actor.system()
    current = lead.status
    if current == target:
        return None

    if not can_transition(current, target, trigger):
        raise InvalidStateError(
            f"Lead #{lead.id} cannot move from {current.value} to {target.value} via {trigger.value}"
        )

    lead.status = target
    lead.updated_at = now or utcnow()
    change = StatusChange(current, target, trigger, actor)
    logger.info(f"Lead #{lead.id}: {current.value} -> {target.value} ({trigger.value}, {actor})")
    return change


def apply_classification(
    lead: Lead,
    quality: int,
    urgency: int,
    probability: float,
    days_since_created: int,
    actor: Optional[Actor] = None,
    now: Optional[datetime] = None,
) -> Optional[StatusChange]:
    """Classify a lead after scoring, if it is still unclassified."""
    if lead.status not in UNCLASSIFIED_STATUSES:
        return None
    target = classify(quality, urgency, probability, days_since_created)
    if target is None:
        return None
    return transition(lead, target, TransitionTrigger.SCORE_CLASSIFICATION, actor, now)
