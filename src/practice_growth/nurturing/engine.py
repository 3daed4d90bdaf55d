"""Nurture orchestration: start, advance, pause and resume sequences,
react to engagement and replies, and hand due steps to the dispatcher.

Scheduling only records the next send time on the lead. ``process_due`` is
the periodic entry point that renders and dispatches whatever has come due,
re-checking the lead inside its transaction so a pause or opt-out that
commits first always wins.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..collaborators import AuditSink, MessageDispatcher, OutboxDispatcher, ScheduledMessage
from ..config import settings
from ..core.classifier import NEUTRAL_ANALYSIS, KeywordResponseClassifier, ResponseClassifier
from ..core.config import ScoringConfig
from ..core.lifecycle import TransitionTrigger, transition
from ..exceptions import InvalidStateError, NotFoundError, ValidationFailure
from ..leads.base import LeadService
from ..leads.manager import LeadManager
from ..leads.schemas import EngagementEvent, parse_input
from ..routing.matcher import AssignmentResult
from ..storage.database import LeadDatabase
from ..storage.models import ActivityEntry, ActivityType, Actor, Lead, LeadStatus
from .engagement import EngagementType, engagement_score, evaluate_event
from .sequences import (
    SEQUENCE_CATALOG,
    NurtureSequenceTemplate,
    SequenceCatalog,
    select_sequence,
    starting_step,
)
from .templates import PracticeProfile, personalization, render_content
from .timing import OptimalTiming, calculate_optimal_timing

logger = logging.getLogger(__name__)

COMPLETION_HOT_QUALITY = 70
HIGH_URGENCY_BUMP = 30
REPLY_CONTENT_LIMIT = 500


class ResponseType(Enum):
    """Ways a lead can answer outreach."""

    EMAIL_REPLY = "email_reply"
    SMS_REPLY = "sms_reply"
    CALL_REQUEST = "call_request"
    BOOKING_ATTEMPT = "booking_attempt"
    UNSUBSCRIBE = "unsubscribe"


RESPONSE_ACTIVITIES = {
    ResponseType.EMAIL_REPLY: ActivityType.RESPONSE_EMAIL_REPLY,
    ResponseType.SMS_REPLY: ActivityType.RESPONSE_SMS_REPLY,
    ResponseType.CALL_REQUEST: ActivityType.RESPONSE_CALL_REQUEST,
    ResponseType.BOOKING_ATTEMPT: ActivityType.RESPONSE_BOOKING_ATTEMPT,
}


@dataclass
class NurtureResult:
    """The step a lead was scheduled for, or completion of its sequence."""

    lead: Lead
    sequence: NurtureSequenceTemplate
    step_number: int
    message: Optional[ScheduledMessage] = None
    timing: Optional[OptimalTiming] = None
    completed: bool = False


@dataclass
class EngagementOutcome:
    lead_id: int
    event: EngagementType
    engagement_score: int = 0
    should_escalate: bool = False
    escalation_reason: Optional[str] = None
    requires_human_follow_up: bool = False
    status: Optional[LeadStatus] = None
    assignment: Optional[AssignmentResult] = None
    applied: bool = True


@dataclass
class ResponseOutcome:
    """Classification of a reply and what to do about it."""

    lead_id: int
    response_type: ResponseType
    sentiment: str
    urgency: str
    requires_human_follow_up: bool
    suggested_action: str
    status: Optional[LeadStatus] = None


@dataclass
class DispatchResult:
    processed: int = 0
    dispatched: int = 0
    errors: int = 0


def suggested_response_action(response_type: ResponseType, sentiment: str, urgency: str) -> str:
    """Next step for staff after a reply. First matching rule wins."""
    if response_type is ResponseType.BOOKING_ATTEMPT:
        return "Lead attempted to book - call immediately to complete booking"
    if response_type is ResponseType.CALL_REQUEST:
        return "Lead requested a call - respond within 1 hour"
    if sentiment == "positive" and urgency == "high":
        return "Hot lead with urgent need - call immediately"
    if sentiment == "positive":
        return "Positive response - schedule follow-up call within 24 hours"
    if sentiment == "negative":
        return "Address concerns - personalized response needed"
    return "Continue nurture sequence with personalized touch"


class NurtureEngine(LeadService):
    """Runs leads through nurture sequences."""

    def __init__(
        self,
        db: LeadDatabase,
        lead_manager: Optional[LeadManager] = None,
        config: Optional[ScoringConfig] = None,
        catalog: SequenceCatalog = SEQUENCE_CATALOG,
        practice: Optional[PracticeProfile] = None,
        dispatcher: Optional[MessageDispatcher] = None,
        classifier: Optional[ResponseClassifier] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Callable] = None,
        timezone_name: Optional[str] = None,
    ):
        if lead_manager is not None:
            config = config or lead_manager.config
            audit_sink = audit_sink or lead_manager.audit_sink
            clock = clock or lead_manager.clock
        super().__init__(db, config, audit_sink, clock)
        self.leads = lead_manager or LeadManager(
            db, self.config, audit_sink=self.audit_sink, catalog=catalog, clock=self.clock
        )
        self.catalog = catalog
        self.practice = practice or PracticeProfile.from_settings(settings)
        self.dispatcher = dispatcher or OutboxDispatcher()
        self.classifier = classifier or KeywordResponseClassifier()
        self.timezone_name = timezone_name or self.config.default_timezone

    # === HELPERS ===

    def _timing_for(self, lead: Lead, reference: datetime, channel: str = "email") -> OptimalTiming:
        return calculate_optimal_timing(
            lead.time_on_site_seconds,
            lead.emails_opened,
            lead.links_clicked,
            reference,
            self.timezone_name,
            channel,
        )

    def _render(
        self,
        lead: Lead,
        sequence: NurtureSequenceTemplate,
        step_number: int,
        send_at: datetime,
    ) -> ScheduledMessage:
        step = sequence.get_step(step_number)
        variables = personalization(lead.first_name, lead.last_name, self.practice)
        channel = step.channel.value
        return ScheduledMessage(
            lead_id=lead.id,
            sequence_id=sequence.id,
            step_number=step_number,
            channel=channel,
            body=render_content(step.body, variables),
            subject=render_content(step.subject, variables) if step.subject else None,
            send_at=send_at,
            recipient=lead.phone if channel == "sms" else lead.email,
            created_at=self.clock(),
        )

    def _schedule_step(
        self,
        lead: Lead,
        sequence: NurtureSequenceTemplate,
        step_number: int,
        now: datetime,
        immediate: bool = False,
    ) -> Tuple[ScheduledMessage, Optional[OptimalTiming]]:
        """Point the lead at a step and decide when it goes out."""
        step = sequence.get_step(step_number)
        timing = None
        if immediate and step_number == 1:
            send_at = now
        else:
            timing = self._timing_for(lead, now + timedelta(days=step.delay_days), step.channel.value)
            send_at = timing.next_send_time

        message = self._render(lead, sequence, step_number, send_at)
        lead.active_sequence_id = sequence.id
        lead.current_step_number = step_number
        lead.next_action = f"Send {sequence.name} step {step_number}"
        lead.next_action_at = send_at
        lead.updated_at = now
        return message, timing

    def _lifetime_engagement(self, lead: Lead) -> int:
        return engagement_score(
            lead.emails_opened, lead.links_clicked, lead.replies_received, lead.current_step_number or 0
        )

    def _advance(
        self,
        lead: Lead,
        sequence: NurtureSequenceTemplate,
        next_step: int,
        now: datetime,
        actor: Actor,
        conn,
        pending: List[ActivityEntry],
    ) -> NurtureResult:
        if next_step > sequence.length:
            target = LeadStatus.HOT if lead.quality_score >= COMPLETION_HOT_QUALITY else LeadStatus.WARM
            change = transition(lead, target, TransitionTrigger.NURTURE_COMPLETE, actor, now)
            lead.current_step_number = sequence.length
            lead.next_action_at = None
            lead.next_action = "Nurture sequence completed - manual follow-up recommended"
            lead.updated_at = now
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.NURTURE_COMPLETED,
                f"Completed {sequence.name} sequence",
                actor=actor,
                sequence_id=sequence.id,
                steps=sequence.length,
            )
            self._record_status(conn, pending, lead, change)
            logger.info(f"Lead #{lead.id} completed {sequence.id}")
            return NurtureResult(lead, sequence, sequence.length, completed=True)

        message, timing = self._schedule_step(lead, sequence, next_step, now)
        self.db.update_lead(lead, conn)
        self._record(
            conn, pending, lead, ActivityType.NURTURE_STEP_SCHEDULED,
            f"Scheduled {sequence.name} step {next_step} for {message.send_at.isoformat()}",
            actor=actor,
            sequence_id=sequence.id,
            step_number=next_step,
            channel=message.channel,
            send_at=message.send_at.isoformat(),
        )
        return NurtureResult(lead, sequence, next_step, message, timing)

    def _active_sequence(self, lead: Lead) -> NurtureSequenceTemplate:
        if not lead.active_sequence_id:
            raise InvalidStateError(f"Lead #{lead.id} has no active nurture sequence")
        return self.catalog.get(lead.active_sequence_id)

    # === SEQUENCE CONTROL ===

    def recommend_sequence(self, lead_id: int) -> Tuple[NurtureSequenceTemplate, int]:
        """The sequence a lead would be placed in, with its engagement score."""
        self.leads.refresh_if_stale(self._require_lead(lead_id))
        lead = self._require_lead(lead_id)
        score = self._lifetime_engagement(lead)
        sequence = select_sequence(
            lead.quality_score,
            lead.urgency_score,
            lead.conversion_probability,
            lead.days_since_created(self.clock()),
            score,
            self.catalog,
        )
        return sequence, score

    def nurture_lead(
        self,
        lead_id: int,
        sequence_id: Optional[str] = None,
        immediate_start: bool = True,
        actor: Optional[Actor] = None,
    ) -> NurtureResult:
        """Start (or continue) a nurture sequence for a lead."""
        actor = actor or Actor.system()
        explicit = self.catalog.get(sequence_id) if sequence_id else None

        lead = self._require_lead(lead_id)
        if lead.is_terminal or lead.opted_out:
            raise InvalidStateError(f"Lead #{lead_id} cannot be nurtured ({lead.status.value})")
        self.leads.refresh_if_stale(lead)

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.is_terminal or lead.opted_out:
                raise InvalidStateError(f"Lead #{lead_id} cannot be nurtured ({lead.status.value})")

            now = self.clock()
            sequence = explicit or select_sequence(
                lead.quality_score,
                lead.urgency_score,
                lead.conversion_probability,
                lead.days_since_created(now),
                self._lifetime_engagement(lead),
                self.catalog,
            )
            step_number = starting_step(sequence, lead.active_sequence_id, lead.current_step_number)
            continuing = lead.active_sequence_id == sequence.id and bool(lead.current_step_number)

            change = transition(lead, LeadStatus.NURTURING, TransitionTrigger.NURTURE_START, actor, now)
            if not continuing:
                lead.nurture_started_at = now
                lead.sequence_links_clicked = 0
            message, timing = self._schedule_step(lead, sequence, step_number, now, immediate_start)
            self.db.update_lead(lead, conn)

            self._record(
                conn, pending, lead, ActivityType.NURTURE_STEP_SCHEDULED,
                f"{'Continued' if continuing else 'Started'} {sequence.name} at step {step_number}",
                actor=actor,
                sequence_id=sequence.id,
                step_number=step_number,
                channel=message.channel,
                send_at=message.send_at.isoformat(),
                expected_conversion_rate=sequence.average_conversion_rate,
            )
            self._record_status(conn, pending, lead, change)

        logger.info(f"Lead #{lead_id} nurturing in {sequence.id} at step {step_number}")
        self._publish(pending)
        return NurtureResult(lead, sequence, step_number, message, timing)

    def advance_step(
        self,
        lead_id: int,
        skip_to_step: Optional[int] = None,
        mark_engaged: bool = False,
        actor: Optional[Actor] = None,
    ) -> NurtureResult:
        """Move to the next step (or ``skip_to_step``), completing the sequence past its end."""
        if skip_to_step is not None and skip_to_step < 1:
            raise ValidationFailure("skip_to_step must be at least 1")
        actor = actor or Actor.system()
        self.leads.refresh_if_stale(self._require_lead(lead_id))

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.status is not LeadStatus.NURTURING:
                raise InvalidStateError(f"Lead #{lead_id} is not being nurtured ({lead.status.value})")
            sequence = self._active_sequence(lead)

            if mark_engaged:
                lead.emails_opened += 1
            next_step = skip_to_step or (lead.current_step_number or 0) + 1
            result = self._advance(lead, sequence, next_step, self.clock(), actor, conn, pending)

        self._publish(pending)
        return result

    def pause(self, lead_id: int, reason: Optional[str] = None, actor: Optional[Actor] = None) -> Lead:
        """Stop sending; the lead keeps its place in the sequence."""
        actor = actor or Actor.system()
        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.status is not LeadStatus.NURTURING:
                raise InvalidStateError(f"Lead #{lead_id} is not being nurtured ({lead.status.value})")

            now = self.clock()
            change = transition(lead, LeadStatus.WARM, TransitionTrigger.NURTURE_PAUSE, actor, now)
            lead.next_action_at = None
            lead.next_action = "Nurture paused"
            lead.updated_at = now
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.NURTURE_PAUSED,
                f"Nurture paused{': ' + reason if reason else ''}",
                actor=actor,
                reason=reason,
                sequence_id=lead.active_sequence_id,
                step_number=lead.current_step_number,
            )
            self._record_status(conn, pending, lead, change)

        self._publish(pending)
        return lead

    def resume(self, lead_id: int, restart: bool = False, actor: Optional[Actor] = None) -> NurtureResult:
        """Pick a paused sequence back up, at the recorded step or from the top."""
        actor = actor or Actor.system()
        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            if lead.is_terminal or lead.opted_out:
                raise InvalidStateError(f"Lead #{lead_id} cannot be nurtured ({lead.status.value})")
            sequence = self._active_sequence(lead)

            now = self.clock()
            step_number = 1 if restart else min(lead.current_step_number or 1, sequence.length)
            if restart:
                lead.nurture_started_at = now
                lead.sequence_links_clicked = 0

            change = transition(lead, LeadStatus.NURTURING, TransitionTrigger.NURTURE_RESUME, actor, now)
            message, timing = self._schedule_step(lead, sequence, step_number, now, immediate=restart)
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.NURTURE_RESUMED,
                f"{'Restarted' if restart else 'Resumed'} {sequence.name} at step {step_number}",
                actor=actor,
                sequence_id=sequence.id,
                step_number=step_number,
                send_at=message.send_at.isoformat(),
            )
            self._record_status(conn, pending, lead, change)

        self._publish(pending)
        return NurtureResult(lead, sequence, step_number, message, timing)

    # === ENGAGEMENT ===

    def record_engagement(
        self,
        event: Union[EngagementEvent, Dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> EngagementOutcome:
        """Count an open, click or reply and apply the escalation rules."""
        if not isinstance(event, EngagementEvent):
            event = parse_input(EngagementEvent, event)
        actor = actor or Actor.system()

        if event.event is EngagementType.OPT_OUT:
            return self.opt_out(event.lead_id, actor=actor)
        self.leads.refresh_if_stale(self._require_lead(event.lead_id))

        pending: List[ActivityEntry] = []
        assignment = None
        with self.db.transaction() as conn:
            lead = self._require_lead(event.lead_id, conn)
            now = self.clock()

            if event.event is EngagementType.EMAIL_OPENED:
                lead.emails_opened += 1
            elif event.event is EngagementType.LINK_CLICKED:
                lead.links_clicked += 1
                if lead.active_sequence_id:
                    lead.sequence_links_clicked += 1
            elif event.event.is_reply:
                lead.replies_received += 1

            effect = evaluate_event(event.event, lead.sequence_links_clicked)
            step_number = event.step_number or lead.current_step_number or 0
            score = engagement_score(lead.emails_opened, lead.links_clicked, lead.replies_received, step_number)

            # Closed or opted-out leads keep their status; the event is still counted
            change = None
            if not lead.is_terminal and not lead.opted_out:
                lead.urgency_score = min(100, lead.urgency_score + effect.urgency_delta)
                if effect.force_hot:
                    was_nurturing = lead.status is LeadStatus.NURTURING
                    change = transition(lead, LeadStatus.HOT, TransitionTrigger.REPLY_ESCALATION, actor, now)
                    if was_nurturing:
                        lead.next_action_at = None
                    lead.next_action = "Lead replied - personal follow-up required"
                if effect.should_escalate and not lead.assigned_staff_id:
                    try:
                        assignment = self.leads.assign_owner(lead, conn, pending, actor=actor)
                    except NotFoundError as e:
                        logger.warning(f"Could not route engaged lead #{lead.id}: {e}")

            lead.updated_at = now
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.NURTURE_ENGAGEMENT,
                f"Engagement: {event.event.value}",
                actor=actor,
                event=event.event.value,
                sequence_id=lead.active_sequence_id,
                step_number=step_number,
                link_url=event.link_url,
                reply_content=event.reply_content[:REPLY_CONTENT_LIMIT] if event.reply_content else None,
                engagement_score=score,
                should_escalate=effect.should_escalate,
            )
            self._record_status(conn, pending, lead, change)

        self._publish(pending)
        if assignment is not None:
            self.leads.notifier.notify(lead, assignment)
        if effect.should_escalate:
            logger.info(f"Lead #{lead.id} flagged for escalation: {effect.escalation_reason}")

        return EngagementOutcome(
            lead_id=lead.id,
            event=event.event,
            engagement_score=score,
            should_escalate=effect.should_escalate,
            escalation_reason=effect.escalation_reason,
            requires_human_follow_up=effect.requires_human_follow_up,
            status=lead.status,
            assignment=assignment,
        )

    def opt_out(
        self,
        lead_id: int,
        actor: Optional[Actor] = None,
        reason: str = "Lead opted out of communications",
    ) -> EngagementOutcome:
        """Stop all outreach and close the lead as LOST.

        A missing lead is logged and reported as not applied rather than
        raising, so delivery-side unsubscribe hooks never fail.
        """
        actor = actor or Actor.system()
        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self.db.get_lead(lead_id, conn)
            if lead is None:
                logger.warning(f"Opt-out received for unknown lead #{lead_id}")
                return EngagementOutcome(lead_id=lead_id, event=EngagementType.OPT_OUT, applied=False)

            now = self.clock()
            change = transition(lead, LeadStatus.LOST, TransitionTrigger.OPT_OUT, actor, now)
            lead.opted_out = True
            lead.next_action_at = None
            lead.next_action = "Respect opt-out - no further outreach"
            lead.updated_at = now
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, ActivityType.LEAD_OPTED_OUT,
                reason,
                actor=actor,
                sequence_id=lead.active_sequence_id,
                step_number=lead.current_step_number,
            )
            self._record_status(conn, pending, lead, change)

        logger.info(f"Lead #{lead_id} opted out")
        self._publish(pending)
        return EngagementOutcome(
            lead_id=lead_id,
            event=EngagementType.OPT_OUT,
            engagement_score=self._lifetime_engagement(lead),
            status=lead.status,
        )

    def handle_response(
        self,
        lead_id: int,
        response_type: Union[ResponseType, str],
        content: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> ResponseOutcome:
        """Classify a reply and move the lead accordingly."""
        try:
            response_type = ResponseType(response_type)
        except ValueError as e:
            raise ValidationFailure(f"Unknown response type: {response_type}") from e
        actor = actor or Actor.system()

        if response_type is ResponseType.UNSUBSCRIBE:
            outcome = self.opt_out(lead_id, actor=actor, reason="Lead unsubscribed")
            if not outcome.applied:
                raise NotFoundError(f"Lead #{lead_id} not found")
            return ResponseOutcome(
                lead_id=lead_id,
                response_type=response_type,
                sentiment="negative",
                urgency="low",
                requires_human_follow_up=False,
                suggested_action="Lead has opted out. Respect their preference.",
                status=outcome.status,
            )

        analysis = self.classifier.classify(content) if content else NEUTRAL_ANALYSIS
        high = analysis.urgency == "high"
        requires_follow_up = (
            high
            or analysis.is_positive
            or response_type in (ResponseType.CALL_REQUEST, ResponseType.BOOKING_ATTEMPT)
        )
        suggested = suggested_response_action(response_type, analysis.sentiment, analysis.urgency)

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            now = self.clock()
            change = None
            if not lead.is_terminal and not lead.opted_out:
                target = None
                if analysis.is_positive and high:
                    target = LeadStatus.HOT
                elif analysis.is_positive or response_type is ResponseType.BOOKING_ATTEMPT:
                    target = LeadStatus.READY

                if target is not None:
                    was_nurturing = lead.status is LeadStatus.NURTURING
                    change = transition(lead, target, TransitionTrigger.POSITIVE_RESPONSE, actor, now)
                    if was_nurturing and change is not None:
                        lead.next_action_at = None
                if high:
                    lead.urgency_score = min(100, lead.urgency_score + HIGH_URGENCY_BUMP)
                lead.next_action = suggested

            lead.updated_at = now
            self.db.update_lead(lead, conn)
            self._record(
                conn, pending, lead, RESPONSE_ACTIVITIES[response_type],
                f"Lead responded via {response_type.value}: {analysis.sentiment} sentiment, "
                f"{analysis.urgency} urgency",
                actor=actor,
                content=content[:REPLY_CONTENT_LIMIT] if content else None,
                sentiment=analysis.sentiment,
                urgency=analysis.urgency,
                requires_human_follow_up=requires_follow_up,
            )
            self._record_status(conn, pending, lead, change)

        self._publish(pending)
        return ResponseOutcome(
            lead_id=lead_id,
            response_type=response_type,
            sentiment=analysis.sentiment,
            urgency=analysis.urgency,
            requires_human_follow_up=requires_follow_up,
            suggested_action=suggested,
            status=lead.status,
        )

    # === TIMING & DISPATCH ===

    def optimal_timing(self, lead_id: int, channel: str = "email", now: Optional[datetime] = None) -> OptimalTiming:
        lead = self._require_lead(lead_id)
        return self._timing_for(lead, now or self.clock(), channel)

    def process_due(self, now: Optional[datetime] = None, limit: int = 100) -> DispatchResult:
        """Dispatch every step whose send time has passed, then advance each lead.

        Meant to be called from a periodic job. Each lead is handled in its
        own transaction; the dispatcher is called before commit so a failed
        hand-off leaves the step due for the next run.
        """
        now = now or self.clock()
        result = DispatchResult()

        for lead_id in self.db.due_nurture_leads(now, limit):
            result.processed += 1
            try:
                if self._dispatch_due(lead_id, now):
                    result.dispatched += 1
            except Exception:
                result.errors += 1
                logger.exception(f"Failed to dispatch nurture step for lead #{lead_id}")

        if result.processed:
            logger.info(f"Nurture dispatch: {result.dispatched}/{result.processed} sent, {result.errors} errors")
        return result

    def _dispatch_due(self, lead_id: int, now: datetime) -> bool:
        actor = Actor.agent()
        lead = self._require_lead(lead_id)
        if lead.status is LeadStatus.NURTURING:
            self.leads.refresh_if_stale(lead)

        pending: List[ActivityEntry] = []
        with self.db.transaction() as conn:
            lead = self._require_lead(lead_id, conn)
            # Re-check: a pause, opt-out or status change may have committed since the query
            if (
                lead.status is not LeadStatus.NURTURING
                or lead.opted_out
                or lead.next_action_at is None
                or lead.next_action_at > now
            ):
                logger.debug(f"Lead #{lead_id} no longer due; skipping")
                return False

            sequence = self._active_sequence(lead)
            step_number = lead.current_step_number or 1
            message = self._render(lead, sequence, step_number, lead.next_action_at)
            self._record(
                conn, pending, lead, ActivityType.NURTURE_STEP_DISPATCHED,
                f"Dispatched {sequence.name} step {step_number} via {message.channel}",
                actor=actor,
                sequence_id=sequence.id,
                step_number=step_number,
                channel=message.channel,
                message_id=message.id,
            )
            self._advance(lead, sequence, step_number + 1, now, actor, conn, pending)
            self.dispatcher.dispatch(message)

        self._publish(pending)
        return True

    # === ANALYTICS ===

    def nurture_analytics(
        self,
        sequence_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        return self.leads.nurture_analytics(sequence_id, start, end)
