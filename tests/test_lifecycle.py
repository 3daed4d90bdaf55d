"""Tests for the lead state machine."""

from datetime import datetime, timezone

import pytest

from practice_growth.core.lifecycle import (
    TransitionTrigger,
    apply_classification,
    can_transition,
    classify,
    transition,
)
from practice_growth.exceptions import InvalidStateError
from practice_growth.storage.models import Actor, Lead, LeadStatus


class TestClassify:

    def test_hot(self):
        assert classify(70, 60, 0.5, 0) == LeadStatus.HOT

    def test_warm_by_quality_or_probability(self):
        assert classify(50, 0, 0.1, 0) == LeadStatus.WARM
        assert classify(20, 0, 0.4, 0) == LeadStatus.WARM

    def test_cold_only_when_old(self):
        assert classify(20, 0, 0.1, 15) == LeadStatus.COLD
        assert classify(20, 0, 0.1, 14) is None


class TestTransition:

    def test_same_state_is_noop(self):
        lead = Lead(id=1, status=LeadStatus.WARM)
        assert transition(lead, LeadStatus.WARM, TransitionTrigger.MANUAL) is None

    def test_classification_does_not_override_manual_status(self):
        lead = Lead(id=1, status=LeadStatus.COLD)
        assert apply_classification(lead, 90, 90, 0.9, 0) is None
        assert lead.status == LeadStatus.COLD

    def test_classification_from_new(self):
        lead = Lead(id=1)
        change = apply_classification(lead, 90, 90, 0.9, 0)
        assert change.new_status == LeadStatus.HOT
        assert change.trigger == TransitionTrigger.SCORE_CLASSIFICATION
        assert lead.status == LeadStatus.HOT

    def test_opt_out_from_any_state(self):
        for status in LeadStatus:
            assert can_transition(status, LeadStatus.LOST, TransitionTrigger.OPT_OUT) or status == LeadStatus.LOST

    def test_manual_cannot_convert(self):
        lead = Lead(id=1, status=LeadStatus.HOT)
        with pytest.raises(InvalidStateError):
            transition(lead, LeadStatus.CONVERTED, TransitionTrigger.MANUAL)
        assert lead.status == LeadStatus.HOT

    def test_escalation_rejected_for_terminal_lead(self):
        lead = Lead(id=1, status=LeadStatus.LOST)
        with pytest.raises(InvalidStateError):
            transition(lead, LeadStatus.HOT, TransitionTrigger.ESCALATION)

    def test_manual_reactivation(self):
        lead = Lead(id=1, status=LeadStatus.LOST)
        change = transition(lead, LeadStatus.WARM, TransitionTrigger.MANUAL, Actor.user("dr-lee"))
        assert change.is_reactivation
        assert str(change.actor) == "user:dr-lee"

    def test_transition_stamps_given_time(self):
        lead = Lead(id=1, status=LeadStatus.WARM)
        now = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)
        transition(lead, LeadStatus.COLD, TransitionTrigger.MANUAL, now=now)
        assert lead.updated_at == now

    def test_nurture_pause_only_from_nurturing(self):
        assert can_transition(LeadStatus.NURTURING, LeadStatus.WARM, TransitionTrigger.NURTURE_PAUSE)
        assert not can_transition(LeadStatus.HOT, LeadStatus.WARM, TransitionTrigger.NURTURE_PAUSE)


class TestActor:

    def test_round_trip(self):
        for actor in (Actor.system(), Actor.agent(), Actor.user("42")):
            assert Actor.parse(str(actor)) == actor

    def test_rejects_unknown(self):
        with pytest.raises(ValueError):
            Actor.parse("robot")
        with pytest.raises(ValueError):
            Actor.parse("user:")
