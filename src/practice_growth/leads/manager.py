"""Lead management: capture, scoring, ranking, assignment and status."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..analytics.reports import NurtureReport, SourcePerformance, nurture_performance, source_performance
from ..collaborators import AssignmentNotifier, AuditSink, LoggingAssignmentNotifier
from ..core.config import ScoringConfig
from ..core.lifecycle import StatusChange, TransitionTrigger, apply_classification, transition
from ..core.predictor import ConversionPrediction, explain_prediction
from ..core.scorer import LeadScorer, ScoringResult
from ..exceptions import InvalidStateError, NotFoundError, ValidationFailure
from ..nurturing.sequences import SEQUENCE_CATALOG, SequenceCatalog
from ..routing.matcher import AssignmentResult, StaffAssignmentMatcher
from ..storage.database import LeadDatabase
from ..storage.models import (
    ACTIVE_STATUSES,
    ActivityEntry,
    ActivityType,
    Actor,
    Lead,
    LeadSource,
    LeadStatus,
    StaffMember,
)
from .base import LeadService
from .schemas import ConversionEvent, LeadCaptureEvent, StaffRosterEntry, parse_input

logger = logging.getLogger(__name__)

ESCALATION_URGENCY = {"high": 100, "medium": 75, "low": 50}
MERGED_COUNTERS = ("website_visits", "page_views", "time_on_site_seconds")


@dataclass
class ScoreOutcome:
    """Scores for one lead, fresh or reused from the last computation."""

    lead_id: int
    quality: int
    urgency: int
    probability: float
    factors: Dict[str, int]
    intent_signals: List[str]
    recommendation: Optional[str]
    suggested_action: Optional[str]
    priority_rank: Optional[int]
    status: LeadStatus
    scored_at: Optional[datetime]
    cached: bool = False
    status_change: Optional[StatusChange] = None


@dataclass
class CaptureResult:
    lead: Lead
    is_new: bool
    score: Optional[ScoreOutcome] = None


@dataclass
class BulkScoreResult:
    """Summary of a bulk rescoring run."""

    total: int = 0
    scored: int = 0
    errors: int = 0
    status_changes: Dict[str, int] = field(default_factory=lambda: {"hot": 0, "warm": 0, "cold": 0})


@dataclass
class RankedLead:
    """One row of the priority ranking."""

    rank: int
    lead_id: int
    name: str
    quality_score: int
    urgency_score: int
    conversion_probability: float
    status: LeadStatus
    intent_signals: List[str]
    next_action: Optional[str]


@dataclass
class EscalationResult:
    lead: Lead
    urgency_level: str
    assignment: Optional[AssignmentResult] = None


class LeadManager(LeadService):
    """Entry point for lead-level operations.

    Every mutation runs in one write transaction: the lead is re-read, the
    change is computed and written, and the activity entries go in with it.
    """

    def __init__(
        self,
        db: LeadDatabase,
        config: Optional[ScoringConfig] = None,
        audit_sink: Optional[AuditSink] = None,
        notifier: Optional[AssignmentNotifier] = None,
        matcher: Optional[StaffAssignmentMatcher] = None,
        catalog: SequenceCatalog = SEQUENCE_CATALOG,
        clock: Optional[Callable] = None,
    ):
        super().__init__(db, config, audit_sink, clock)
        self.scorer = LeadScorer(self.config)
        self.matcher = matcher or StaffAssignmentMatcher()
        self.notifier = notifier or LoggingAssignmentNotifier()
        self.catalog = catalog

    # === CAPTURE ===

    def capture_lead(
        self,
        event: Union[LeadCaptureEvent, Dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> CaptureResult:
        """Record an inquiry, merging it into an open lead with the same contact."""
        if not isinstance(event, LeadCaptureEvent):
            event = parse_input(LeadCaptureEvent, event)
        actor = actor or Actor.system()

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            now = self.clock()
            existing = self.db.find_open_duplicate(event.email, event.phone, conn)

            if existing is not None:
                before = {name: getattr(existing, name) for name in MERGED_COUNTERS}
                self._merge(existing, event, now)
                self.db.update_lead(existing, conn)
                after = {name: getattr(existing, name) for name in MERGED_COUNTERS}
                self._record(
                    conn, pending, existing, ActivityType.LEAD_MERGED,
                    f"Duplicate capture from {event.source.value} merged ({self.config.merge_strategy})",
                    actor=actor,
                    strategy=self.config.merge_strategy,
                    before=before,
                    after=after,
                )
                logger.info(f"Merged duplicate capture into lead #{existing.id} ({self.config.merge_strategy})")
                result = CaptureResult(lead=existing, is_new=False)
            else:
                lead = Lead(
                    first_name=event.first_name,
                    last_name=event.last_name,
                    email=event.email,
                    phone=event.phone,
                    source=event.source,
                    source_detail=event.source_detail,
                    campaign_id=event.campaign_id,
                    notes=event.notes,
                    website_visits=event.website_visits,
                    page_views=event.page_views,
                    time_on_site_seconds=event.time_on_site_seconds,
                    form_abandoned=event.form_abandoned,
                    last_page_viewed=event.last_page_viewed,
                    created_at=now,
                    updated_at=now,
                )
                self.db.insert_lead(lead, conn)
                self._record(
                    conn, pending, lead, ActivityType.LEAD_CREATED,
                    f"Lead captured from {event.source.value}",
                    actor=actor,
                    source=event.source.value,
                    source_detail=event.source_detail,
                )
                logger.info(f"Captured lead #{lead.id} from {event.source.value}")
                outcome = self._rescore(lead, now, actor, conn, pending)
                result = CaptureResult(lead=lead, is_new=True, score=outcome)

        self._publish(pending)
        return result

    def _merge(self, lead: Lead, event: LeadCaptureEvent, now: datetime):
        for name in MERGED_COUNTERS:
            current, incoming = getattr(lead, name), getattr(event, name)
            if self.config.merge_strategy == "max":
                setattr(lead, name, max(current, incoming))
            else:
                setattr(lead, name, current + incoming)

        if event.last_page_viewed:
            lead.last_page_viewed = event.last_page_viewed
        lead.form_abandoned = lead.form_abandoned or event.form_abandoned
        lead.email = lead.email or event.email
        lead.phone = lead.phone or event.phone
        if event.notes:
            lead.notes = f"{lead.notes}\n{event.notes}" if lead.notes else event.notes

        # Counters changed, so the stored scores are no longer trustworthy
        lead.last_scored_at = None
        lead.updated_at = now

    # === SCORING ===

    def score_lead(
        self,
        lead_id: int,
        force_recalculate: bool = False,
        actor: Optional[Actor] = None,
    ) -> ScoreOutcome:
        """Score a lead, reusing fresh scores unless forced."""
        actor = actor or Actor.system()
        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.is_terminal:
                raise InvalidStateError(f"Lead #{lead_id} is {lead.status.value} and cannot be scored")

            now = self.clock()
            if not force_recalculate and lead.is_score_fresh(now, self.config.freshness_hours):
                return self._cached_outcome(lead)

            outcome = self._rescore(lead, now, actor, conn, pending)

        self._publish(pending)
        return outcome

    def _rescore(self, lead: Lead, now: datetime, actor: Actor, conn, pending) -> ScoreOutcome:
        result: ScoringResult = self.scorer.score_lead(lead, now)
        old_quality = lead.quality_score

        lead.quality_score = result.quality
        lead.urgency_score = result.urgency
        lead.conversion_probability = result.probability
        lead.score_factors = result.factors.as_dict()
        lead.intent_signals = result.signal_descriptions
        lead.recommendation = result.recommendation.recommendation
        suggested = result.recommendation.suggested_action
        # A scheduled nurture step owns next_action until it is cleared
        if lead.next_action_at is None:
            lead.next_action = suggested
        lead.last_scored_at = now
        lead.updated_at = now

        lead.score_history.append({
            "scored_at": now.isoformat(),
            "quality": result.quality,
            "urgency": result.urgency,
            "probability": result.probability,
            "suggested_action": suggested,
        })
        lead.score_history = lead.score_history[-self.config.score_history_limit:]

        change = apply_classification(
            lead, result.quality, result.urgency, result.probability, result.days_since_created, actor, now
        )
        lead.priority_rank = self.db.count_higher_ranked(result.quality, result.probability, lead.id, conn) + 1
        self.db.update_lead(lead, conn)

        self._record(
            conn, pending, lead, ActivityType.SCORE_UPDATED,
            f"Score updated: {result.summary}",
            actor=actor,
            old_value=str(old_quality),
            new_value=str(result.quality),
            urgency=result.urgency,
            probability=result.probability,
            factors=lead.score_factors,
        )
        self._record_status(conn, pending, lead, change)

        return ScoreOutcome(
            lead_id=lead.id,
            quality=result.quality,
            urgency=result.urgency,
            probability=result.probability,
            factors=dict(lead.score_factors),
            intent_signals=list(lead.intent_signals),
            recommendation=lead.recommendation,
            suggested_action=suggested,
            priority_rank=lead.priority_rank,
            status=lead.status,
            scored_at=now,
            status_change=change,
        )

    def _cached_outcome(self, lead: Lead) -> ScoreOutcome:
        latest = lead.score_history[-1] if lead.score_history else {}
        return ScoreOutcome(
            lead_id=lead.id,
            quality=lead.quality_score,
            urgency=lead.urgency_score,
            probability=lead.conversion_probability,
            factors=dict(lead.score_factors),
            intent_signals=list(lead.intent_signals),
            recommendation=lead.recommendation,
            suggested_action=latest.get("suggested_action"),
            priority_rank=lead.priority_rank,
            status=lead.status,
            scored_at=lead.last_scored_at,
            cached=True,
        )

    def refresh_if_stale(self, lead: Lead):
        """Recompute stale scores before they drive a decision."""
        if lead.is_terminal or lead.is_score_fresh(self.clock(), self.config.freshness_hours):
            return
        self.score_lead(lead.id, force_recalculate=True)

    def bulk_score(
        self,
        lead_ids: Optional[List[int]] = None,
        status: Optional[LeadStatus] = None,
        max_leads: int = 100,
        actor: Optional[Actor] = None,
    ) -> BulkScoreResult:
        """Rescore many leads; one failing lead does not stop the rest."""
        if not 1 <= max_leads <= self.config.bulk_score_max:
            raise ValidationFailure(f"max_leads must be between 1 and {self.config.bulk_score_max}")

        ids = self.db.leads_for_scoring(lead_ids, status, max_leads)
        result = BulkScoreResult(total=len(ids))

        for lead_id in ids:
            try:
                outcome = self.score_lead(lead_id, force_recalculate=True, actor=actor)
            except Exception:
                result.errors += 1
                logger.exception(f"Failed to score lead #{lead_id}")
                continue

            result.scored += 1
            change = outcome.status_change
            if change is not None and change.new_status.value in result.status_changes:
                result.status_changes[change.new_status.value] += 1

        logger.info(f"Bulk scoring: {result.scored}/{result.total} scored, {result.errors} errors")
        return result

    # === QUERIES ===

    def get_lead(self, lead_id: int) -> Lead:
        return self._require_lead(lead_id)

    def list_leads(
        self,
        status: Optional[Union[LeadStatus, Iterable[LeadStatus]]] = None,
        min_quality: Optional[int] = None,
        assigned_staff_id: Optional[str] = None,
        source: Optional[LeadSource] = None,
        sort_by: str = "priority_rank",
        descending: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Lead]:
        """Filtered, sorted page of leads."""
        if isinstance(status, LeadStatus):
            status = [status]
        try:
            return self.db.list_leads(
                statuses=status,
                min_quality=min_quality,
                assigned_staff_id=assigned_staff_id,
                source=source,
                sort_by=sort_by,
                descending=descending,
                limit=limit,
                offset=offset,
            )
        except ValueError as e:
            raise ValidationFailure(str(e)) from e

    def get_priority_rankings(self, limit: int = 20, include_converted: bool = False) -> List[RankedLead]:
        """Leads ordered by quality then probability, with shared ranks for ties.

        Stale scores are refreshed first. Ranks are computed from a snapshot
        and may be outdated as soon as another writer commits.
        """
        now = self.clock()
        for lead in self.db.list_leads(statuses=ACTIVE_STATUSES, limit=None):
            if lead.is_score_fresh(now, self.config.freshness_hours):
                continue
            try:
                self.score_lead(lead.id, force_recalculate=True)
            except (InvalidStateError, NotFoundError) as e:
                # Closed or removed between the listing and the rescore
                logger.debug(f"Skipped refreshing lead #{lead.id}: {e}")

        statuses = set(ACTIVE_STATUSES)
        if include_converted:
            statuses.add(LeadStatus.CONVERTED)
        leads = self.db.list_leads(statuses=statuses, limit=None)
        leads.sort(key=lambda l: (-l.quality_score, -l.conversion_probability, l.created_at, l.id))

        rankings = []
        previous_key, previous_rank = None, 0
        for position, lead in enumerate(leads, start=1):
            key = (lead.quality_score, lead.conversion_probability)
            rank = previous_rank if key == previous_key else position
            previous_key, previous_rank = key, rank
            if position > limit:
                break
            rankings.append(RankedLead(
                rank=rank,
                lead_id=lead.id,
                name=lead.display_name,
                quality_score=lead.quality_score,
                urgency_score=lead.urgency_score,
                conversion_probability=lead.conversion_probability,
                status=lead.status,
                intent_signals=lead.intent_signals,
                next_action=lead.next_action,
            ))
        return rankings

    def get_conversion_prediction(self, lead_id: int) -> ConversionPrediction:
        """Probability breakdown with factors and suggested next steps."""
        lead = self._require_lead(lead_id)
        if not lead.is_terminal and not lead.is_score_fresh(self.clock(), self.config.freshness_hours):
            self.score_lead(lead_id, force_recalculate=True)
            lead = self._require_lead(lead_id)

        return explain_prediction(
            lead_id=lead.id,
            probability=lead.conversion_probability,
            score_factors=lead.score_factors,
            days_since_created=lead.days_since_created(self.clock()),
            has_contact=bool(lead.email or lead.phone),
            form_abandoned=lead.form_abandoned,
            emails_opened=lead.emails_opened,
            config=self.config,
        )

    def get_activities(self, lead_id: int, limit: int = 50) -> List[ActivityEntry]:
        """Activity history, newest first."""
        self._require_lead(lead_id)
        return self.db.get_activities(lead_id, limit)

    # === ASSIGNMENT ===

    def assign_owner(
        self,
        lead: Lead,
        conn,
        pending: List[ActivityEntry],
        preferred_staff_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> AssignmentResult:
        """Match and record an owner for ``lead`` inside the caller's transaction.

        Raises NotFoundError when nobody on the roster can take the lead.
        The caller writes the lead and notifies after commit.
        """
        roster = self.db.list_staff(conn=conn)
        stats = self.db.staff_lead_stats(conn)
        assignment = self.matcher.select(roster, stats, lead.quality_score, preferred_staff_id)

        previous = lead.assigned_staff_id
        lead.assigned_staff_id = assignment.staff_id
        now = self.clock()
        # Leave an in-flight nurture schedule alone
        if lead.status is not LeadStatus.NURTURING:
            lead.next_action = "Follow up with assigned lead"
            lead.next_action_at = now + timedelta(hours=self.config.assignment_follow_up_hours)
        lead.updated_at = now

        self._record(
            conn, pending, lead, ActivityType.LEAD_ASSIGNED,
            f"Assigned to {assignment.staff_name}: {assignment.reason}",
            actor=actor,
            old_value=previous,
            new_value=assignment.staff_id,
            match_score=assignment.match_score,
            preferred=assignment.preferred,
        )
        logger.info(f"Lead #{lead.id} assigned to {assignment.staff_id}")
        return assignment

    def auto_assign(
        self,
        lead_id: int,
        preferred_staff_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> AssignmentResult:
        """Pick the best available staff member for a lead."""
        lead = self._require_lead(lead_id)
        if lead.is_terminal:
            raise InvalidStateError(f"Lead #{lead_id} is {lead.status.value} and cannot be assigned")
        self.refresh_if_stale(lead)

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.is_terminal:
                raise InvalidStateError(f"Lead #{lead_id} is {lead.status.value} and cannot be assigned")
            assignment = self.assign_owner(lead, conn, pending, preferred_staff_id, actor)
            self.db.update_lead(lead, conn)

        self._publish(pending)
        self.notifier.notify(lead, assignment)
        return assignment

    def escalate_lead(
        self,
        lead_id: int,
        urgency_level: str = "high",
        reason: str = "",
        preferred_staff_id: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> EscalationResult:
        """Mark a lead HOT, raise its urgency and route it to a person."""
        if urgency_level not in ESCALATION_URGENCY:
            raise ValidationFailure(f"urgency must be one of {', '.join(ESCALATION_URGENCY)}")
        actor = actor or Actor.system()
        self.refresh_if_stale(self._require_lead(lead_id))

        pending: List[ActivityEntry] = []
        assignment = None
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.is_terminal:
                raise InvalidStateError(f"Lead #{lead_id} is {lead.status.value} and cannot be escalated")

            now = self.clock()
            was_nurturing = lead.status is LeadStatus.NURTURING
            change = transition(lead, LeadStatus.HOT, TransitionTrigger.ESCALATION, actor, now)
            if was_nurturing:
                lead.next_action_at = None
            lead.urgency_score = ESCALATION_URGENCY[urgency_level]
            lead.updated_at = now

            already_owned = preferred_staff_id is not None and lead.assigned_staff_id == preferred_staff_id
            if not already_owned:
                try:
                    assignment = self.assign_owner(lead, conn, pending, preferred_staff_id, actor)
                except NotFoundError as e:
                    logger.warning(f"Escalated lead #{lead_id} without an owner: {e}")

            lead.next_action = f"Escalated ({urgency_level}): {reason}" if reason else f"Escalated ({urgency_level})"
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.LEAD_ESCALATED,
                f"Lead escalated ({urgency_level}){': ' + reason if reason else ''}",
                actor=actor,
                urgency=urgency_level,
                reason=reason,
                assigned_to=assignment.staff_id if assignment else None,
            )
            self._record_status(conn, pending, lead, change)

        self._publish(pending)
        if assignment is not None:
            self.notifier.notify(lead, assignment)
        return EscalationResult(lead=lead, urgency_level=urgency_level, assignment=assignment)

    def register_staff(self, entry: Union[StaffRosterEntry, Dict[str, Any]]) -> StaffMember:
        """Add or update one roster member."""
        if not isinstance(entry, StaffRosterEntry):
            entry = parse_input(StaffRosterEntry, entry)
        member = entry.to_member()
        self.db.upsert_staff(member)
        logger.info(f"Roster updated: {member.id} ({member.role.value}, active={member.is_active})")
        return member

    def apply_roster(self, entries: Iterable[Union[StaffRosterEntry, Dict[str, Any]]]) -> List[StaffMember]:
        """Replace the roster with a snapshot; members not listed are deactivated."""
        members = [
            (e if isinstance(e, StaffRosterEntry) else parse_input(StaffRosterEntry, e)).to_member()
            for e in entries
        ]
        self.db.replace_roster(members)
        return members

    # === STATUS ===

    def update_status(
        self,
        lead_id: int,
        new_status: LeadStatus,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> Lead:
        """Manual status change by staff."""
        actor = actor or Actor.system()
        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            old_status = lead.status
            now = self.clock()
            change = transition(lead, new_status, TransitionTrigger.MANUAL, actor, now)
            if change is None:
                return lead

            if new_status is LeadStatus.LOST or old_status is LeadStatus.NURTURING:
                lead.next_action_at = None
                lead.next_action = None
            self.db.update_lead(lead, conn)
            self._record_status(conn, pending, lead, change, notes=notes)

        self._publish(pending)
        return lead

    def track_conversion(self, event: Union[ConversionEvent, Dict[str, Any]]) -> Lead:
        """Record that a lead booked and became a patient."""
        if not isinstance(event, ConversionEvent):
            event = parse_input(ConversionEvent, event)

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(event.lead_id, conn)
            if lead.status is LeadStatus.CONVERTED:
                raise InvalidStateError(f"Lead #{lead.id} is already converted")

            now = self.clock()
            change = transition(lead, LeadStatus.CONVERTED, TransitionTrigger.CONVERSION, event.actor, now)
            lead.converted_at = now
            lead.converted_customer_id = event.customer_id
            lead.conversion_value = event.conversion_value
            lead.next_action = None
            lead.next_action_at = None
            lead.updated_at = now
            self.db.update_lead(lead, conn)

            days = lead.days_since_created(now)
            self._record(
                conn, pending, lead, ActivityType.LEAD_CONVERTED,
                f"Converted to patient {event.customer_id} after {days} days",
                actor=event.actor,
                customer_id=event.customer_id,
                conversion_value=event.conversion_value,
                days_to_convert=days,
                sequence_id=lead.active_sequence_id,
                notes=event.notes,
            )
            self._record_status(conn, pending, lead, change)

        logger.info(f"Lead #{lead.id} converted (patient {event.customer_id})")
        self._publish(pending)
        return lead

    # === ANALYTICS ===

    def source_analytics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SourcePerformance]:
        return source_performance(self.db.leads_created_between(start, end))

    def nurture_analytics(
        self,
        sequence_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> NurtureReport:
        if sequence_id is not None:
            self.catalog.get(sequence_id)
        leads = self.db.nurtured_leads(sequence_id, start, end)
        return nurture_performance(leads, self.catalog, sequence_id)
