"""Staff assignment matching: pick the best owner for a lead."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError
from ..storage.models import StaffMember

logger = logging.getLogger(__name__)

BASE_MATCH_SCORE = 100.0
LOAD_PENALTY_PER_LEAD = 5.0
CONVERSION_WEIGHT = 50.0
TOP_PERFORMER_BONUS = 20.0
TOP_PERFORMER_MIN_QUALITY = 70
TOP_PERFORMER_MIN_RATE = 0.3


@dataclass
class StaffCandidate:
    """A staff member being ranked for one assignment. Never persisted."""

    staff_id: str
    name: str
    open_leads: int = 0
    conversion_rate: float = 0.0
    match_score: float = 0.0


@dataclass
class AssignmentResult:
    """Who got the lead and why."""

    staff_id: str
    staff_name: str
    reason: str
    match_score: Optional[float] = None
    preferred: bool = False


def match_score(open_leads: int, conversion_rate: float, lead_quality: int) -> float:
    """Score a candidate: lighter load and better conversion history win."""
    score = BASE_MATCH_SCORE - LOAD_PENALTY_PER_LEAD * open_leads + CONVERSION_WEIGHT * conversion_rate

    # Route the best leads to the best performers
    if lead_quality >= TOP_PERFORMER_MIN_QUALITY and conversion_rate >= TOP_PERFORMER_MIN_RATE:
        score += TOP_PERFORMER_BONUS

    return max(0.0, score)


class StaffAssignmentMatcher:
    """Rank eligible staff by current load and historical conversion rate."""

    def rank(
        self,
        roster: Sequence[StaffMember],
        stats: Dict[str, Tuple[int, float]],
        lead_quality: int,
    ) -> List[StaffCandidate]:
        """Rank eligible roster members, best first.

        ``stats`` maps staff id to (open lead count, conversion rate). Equal
        scores keep roster order.
        """
        candidates = []
        for member in roster:
            if not member.can_own_leads:
                continue
            open_leads, rate = stats.get(member.id, (0, 0.0))
            candidates.append(StaffCandidate(
                staff_id=member.id,
                name=member.name,
                open_leads=open_leads,
                conversion_rate=rate,
                match_score=match_score(open_leads, rate, lead_quality),
            ))

        # sort() is stable, so ties keep iteration order
        candidates.sort(key=lambda c: c.match_score, reverse=True)
        return candidates

    def select(
        self,
        roster: Sequence[StaffMember],
        stats: Dict[str, Tuple[int, float]],
        lead_quality: int,
        preferred_staff_id: Optional[str] = None,
    ) -> AssignmentResult:
        """Choose an owner, honoring a valid preferred assignee first."""
        if preferred_staff_id:
            preferred = next((m for m in roster if m.id == preferred_staff_id), None)
            if preferred is not None and preferred.can_own_leads:
                return AssignmentResult(
                    staff_id=preferred.id,
                    staff_name=preferred.name,
                    reason="Manually assigned to preferred staff member",
                    preferred=True,
                )
            logger.warning(
                f"Preferred staff {preferred_staff_id} is missing or inactive; falling back to matching"
            )

        candidates = self.rank(roster, stats, lead_quality)
        if not candidates:
            raise NotFoundError("No active staff members available for assignment")

        best = candidates[0]
        return AssignmentResult(
            staff_id=best.staff_id,
            staff_name=best.name,
            reason=(
                f"Auto-assigned based on availability ({best.open_leads} current leads) "
                f"and conversion rate ({best.conversion_rate * 100:.0f}%)"
            ),
            match_score=best.match_score,
        )
