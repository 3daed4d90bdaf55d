"""Tests for lead capture, scoring, ranking, assignment and status changes."""

from datetime import timedelta

import pytest

from practice_growth.core.config import ScoringConfig
from practice_growth.exceptions import InvalidStateError, NotFoundError, ValidationFailure
from practice_growth.leads.manager import LeadManager
from practice_growth.storage.models import ActivityType, Actor, LeadSource, LeadStatus


def casual_visitor(email="ana@example.com", **overrides):
    data = {
        "first_name": "Ana",
        "last_name": "Ruiz",
        "email": email,
        "source": "website",
        "website_visits": 1,
        "page_views": 1,
    }
    data.update(overrides)
    return data


def engaged_referral(email="sam@example.com", **overrides):
    data = {
        "first_name": "Sam",
        "last_name": "Lee",
        "email": email,
        "source": "referral",
        "website_visits": 5,
        "page_views": 10,
        "time_on_site_seconds": 320,
        "form_abandoned": True,
        "last_page_viewed": "/book-appointment",
    }
    data.update(overrides)
    return data


def activity_types(manager, lead_id):
    return [entry.activity_type for entry in manager.get_activities(lead_id)]


class TestCapture:

    def test_casual_visitor_scores_low(self, manager):
        result = manager.capture_lead(casual_visitor())
        assert result.is_new
        assert result.score.quality == 15
        assert result.score.urgency == 0
        assert result.score.probability == pytest.approx(0.075)
        assert result.lead.status == LeadStatus.NEW
        assert result.lead.next_action == "Add to awareness nurture sequence"

    def test_engaged_referral_is_hot(self, manager):
        result = manager.capture_lead(engaged_referral())
        score = result.score
        assert score.quality == 80
        assert score.urgency == 85
        assert score.probability == pytest.approx(0.855)
        assert score.suggested_action == "Call immediately within 5 minutes"
        assert score.priority_rank == 1
        assert result.lead.status == LeadStatus.HOT
        assert "Viewed scheduling page - ready to book" in score.intent_signals

    def test_capture_is_audited(self, manager, audit):
        lead = manager.capture_lead(engaged_referral()).lead
        types = activity_types(manager, lead.id)
        assert types == [ActivityType.STATUS_CHANGED, ActivityType.SCORE_UPDATED, ActivityType.LEAD_CREATED]
        assert [e.activity_type for e in audit.entries] == list(reversed(types))

    def test_invalid_capture_rejected(self, manager, db):
        with pytest.raises(ValidationFailure):
            manager.capture_lead(casual_visitor(email="nope"))
        assert db.get_stats()["total_leads"] == 0

    def test_duplicate_merges_by_sum(self, manager):
        first = manager.capture_lead(casual_visitor(notes="Asked about pricing")).lead
        result = manager.capture_lead(casual_visitor(
            email="ANA@example.com",
            phone="555-010-2000",
            website_visits=2,
            page_views=4,
            last_page_viewed="/pricing",
            notes="Called back",
        ))

        assert not result.is_new
        merged = manager.get_lead(first.id)
        assert merged.website_visits == 3
        assert merged.page_views == 5
        assert merged.last_page_viewed == "/pricing"
        assert merged.phone == "5550102000"
        assert merged.notes == "Asked about pricing\nCalled back"
        assert merged.last_scored_at is None

        entry = manager.get_activities(first.id)[0]
        assert entry.activity_type == ActivityType.LEAD_MERGED
        assert entry.metadata["before"]["website_visits"] == 1
        assert entry.metadata["after"]["website_visits"] == 3

    def test_duplicate_merges_by_max(self, db, clock):
        manager = LeadManager(db, config=ScoringConfig(merge_strategy="max"), clock=clock)
        first = manager.capture_lead(casual_visitor(website_visits=4)).lead
        manager.capture_lead(casual_visitor(website_visits=2, page_views=6))
        merged = manager.get_lead(first.id)
        assert merged.website_visits == 4
        assert merged.page_views == 6

    def test_closed_lead_is_not_merged(self, manager):
        first = manager.capture_lead(casual_visitor()).lead
        manager.update_status(first.id, LeadStatus.LOST)
        second = manager.capture_lead(casual_visitor())
        assert second.is_new
        assert second.lead.id != first.id


class TestScoring:

    def test_fresh_scores_are_reused(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        cached = manager.score_lead(lead.id)
        assert cached.cached
        assert cached.quality == 15
        assert cached.suggested_action == "Add to awareness nurture sequence"
        assert activity_types(manager, lead.id).count(ActivityType.SCORE_UPDATED) == 1

    def test_force_recalculate(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        outcome = manager.score_lead(lead.id, force_recalculate=True)
        assert not outcome.cached
        assert activity_types(manager, lead.id).count(ActivityType.SCORE_UPDATED) == 2

    def test_stale_scores_recomputed(self, manager, clock):
        lead = manager.capture_lead(casual_visitor()).lead
        clock.advance(hours=25)
        assert not manager.score_lead(lead.id).cached

    def test_score_history_trimmed(self, db, clock):
        manager = LeadManager(db, config=ScoringConfig(score_history_limit=2), clock=clock)
        lead = manager.capture_lead(casual_visitor()).lead
        for _ in range(3):
            manager.score_lead(lead.id, force_recalculate=True)
        assert len(manager.get_lead(lead.id).score_history) == 2

    def test_terminal_lead_cannot_be_scored(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        manager.update_status(lead.id, LeadStatus.LOST)
        with pytest.raises(InvalidStateError):
            manager.score_lead(lead.id)

    def test_missing_lead(self, manager):
        with pytest.raises(NotFoundError):
            manager.score_lead(404)

    def test_bulk_score(self, manager, clock):
        for i in range(3):
            manager.capture_lead(casual_visitor(email=f"lead{i}@example.com"))
        clock.advance(days=15)

        result = manager.bulk_score()
        assert result.total == 3
        assert result.scored == 3
        assert result.errors == 0
        assert result.status_changes["cold"] == 3

    def test_bulk_score_limits(self, manager):
        with pytest.raises(ValidationFailure):
            manager.bulk_score(max_leads=0)
        with pytest.raises(ValidationFailure):
            manager.bulk_score(max_leads=501)


class TestRankings:

    def test_order_and_ties(self, manager):
        a = manager.capture_lead(casual_visitor(email="a@example.com")).lead
        b = manager.capture_lead(casual_visitor(email="b@example.com")).lead
        hot = manager.capture_lead(engaged_referral()).lead

        rankings = manager.get_priority_rankings()
        assert [r.lead_id for r in rankings] == [hot.id, a.id, b.id]
        assert [r.rank for r in rankings] == [1, 2, 2]

    def test_limit_and_converted(self, manager):
        hot = manager.capture_lead(engaged_referral()).lead
        manager.capture_lead(casual_visitor())
        manager.track_conversion({"lead_id": hot.id, "customer_id": "p-1"})

        assert len(manager.get_priority_rankings()) == 1
        with_converted = manager.get_priority_rankings(include_converted=True)
        assert with_converted[0].lead_id == hot.id
        assert len(manager.get_priority_rankings(limit=1, include_converted=True)) == 1

    def test_stale_leads_refreshed(self, manager, clock):
        lead = manager.capture_lead(casual_visitor()).lead
        clock.advance(days=2)
        manager.get_priority_rankings()
        assert manager.get_lead(lead.id).last_scored_at == clock.now

    def test_prediction(self, manager):
        lead = manager.capture_lead(engaged_referral()).lead
        prediction = manager.get_conversion_prediction(lead.id)
        assert prediction.estimated_time_to_convert == "1-3 days"
        assert "Schedule immediate phone call" in prediction.recommended_actions
        assert any(f.factor == "Lead Source" for f in prediction.factors)

    def test_list_leads_bad_sort(self, manager):
        with pytest.raises(ValidationFailure):
            manager.list_leads(sort_by="email")

    def test_list_leads_by_status(self, manager):
        manager.capture_lead(casual_visitor())
        hot = manager.capture_lead(engaged_referral()).lead
        assert [l.id for l in manager.list_leads(status=LeadStatus.HOT)] == [hot.id]


class TestAssignment:

    def test_auto_assign(self, manager, notifier, clock):
        manager.register_staff({"id": "amy", "name": "Amy"})
        manager.register_staff({"id": "ben", "name": "Ben", "role": "provider"})
        lead = manager.capture_lead(engaged_referral()).lead

        assignment = manager.auto_assign(lead.id)
        assert assignment.staff_id == "amy"

        stored = manager.get_lead(lead.id)
        assert stored.assigned_staff_id == "amy"
        assert stored.next_action == "Follow up with assigned lead"
        assert stored.next_action_at == clock.now + timedelta(hours=24)
        assert notifier.notifications == [(lead.id, assignment)]
        assert ActivityType.LEAD_ASSIGNED in activity_types(manager, lead.id)

    def test_load_spreads_across_staff(self, manager):
        manager.register_staff({"id": "amy", "name": "Amy"})
        manager.register_staff({"id": "ben", "name": "Ben"})
        first = manager.capture_lead(casual_visitor(email="a@example.com")).lead
        second = manager.capture_lead(casual_visitor(email="b@example.com")).lead
        assert manager.auto_assign(first.id).staff_id == "amy"
        assert manager.auto_assign(second.id).staff_id == "ben"

    def test_empty_roster(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        with pytest.raises(NotFoundError):
            manager.auto_assign(lead.id)

    def test_apply_roster(self, manager, db):
        manager.register_staff({"id": "amy", "name": "Amy"})
        manager.apply_roster([{"id": "ben", "name": "Ben"}])
        assert [m.id for m in db.list_staff(active_only=True)] == ["ben"]


class TestEscalation:

    def test_escalate_without_roster(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        result = manager.escalate_lead(lead.id, "high", "Called twice")

        assert result.assignment is None
        assert result.lead.status == LeadStatus.HOT
        assert result.lead.urgency_score == 100
        assert result.lead.next_action == "Escalated (high): Called twice"
        types = activity_types(manager, lead.id)
        assert ActivityType.LEAD_ESCALATED in types
        assert ActivityType.STATUS_CHANGED in types

    def test_escalate_assigns_preferred(self, manager, notifier):
        manager.register_staff({"id": "amy", "name": "Amy"})
        manager.register_staff({"id": "ben", "name": "Ben"})
        lead = manager.capture_lead(casual_visitor()).lead

        result = manager.escalate_lead(lead.id, "medium", preferred_staff_id="ben")
        assert result.assignment.staff_id == "ben"
        assert result.lead.urgency_score == 75
        assert len(notifier.notifications) == 1

    def test_bad_urgency(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        with pytest.raises(ValidationFailure):
            manager.escalate_lead(lead.id, "extreme")

    def test_closed_lead_cannot_escalate(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        manager.update_status(lead.id, LeadStatus.LOST)
        with pytest.raises(InvalidStateError):
            manager.escalate_lead(lead.id)

    def test_merged_duplicate_rescored_before_routing(self, db, clock, recording_matcher):
        manager = LeadManager(db, matcher=recording_matcher, clock=clock)
        manager.register_staff({"id": "amy", "name": "Amy"})
        lead = manager.capture_lead(casual_visitor(email="sam@example.com", source="referral")).lead
        assert lead.quality_score < 70

        manager.capture_lead(engaged_referral())
        assert manager.get_lead(lead.id).last_scored_at is None

        result = manager.escalate_lead(lead.id, "high", "Asked for a callback")
        stored = manager.get_lead(lead.id)
        assert stored.quality_score >= 70
        assert recording_matcher.qualities == [stored.quality_score]
        assert stored.last_scored_at == clock.now
        assert result.assignment.staff_id == "amy"


class TestStatusAndConversion:

    def test_manual_status_change(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        updated = manager.update_status(lead.id, LeadStatus.COLD, Actor.user("dr-lee"), notes="No answer")
        assert updated.status == LeadStatus.COLD
        assert manager.get_lead(lead.id).updated_at == manager.clock()

        entry = manager.get_activities(lead.id)[0]
        assert entry.activity_type == ActivityType.STATUS_CHANGED
        assert str(entry.actor) == "user:dr-lee"
        assert entry.metadata["notes"] == "No answer"

    def test_same_status_is_noop(self, manager):
        lead = manager.capture_lead(engaged_referral()).lead
        before = len(manager.get_activities(lead.id))
        manager.update_status(lead.id, LeadStatus.HOT)
        assert len(manager.get_activities(lead.id)) == before

    def test_manual_conversion_rejected(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        with pytest.raises(InvalidStateError):
            manager.update_status(lead.id, LeadStatus.CONVERTED)

    def test_reactivation(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        manager.update_status(lead.id, LeadStatus.LOST)
        manager.update_status(lead.id, LeadStatus.WARM)
        assert manager.get_activities(lead.id)[0].activity_type == ActivityType.LEAD_REACTIVATED

    def test_track_conversion(self, manager, clock):
        lead = manager.capture_lead(engaged_referral()).lead
        clock.advance(days=3)

        converted = manager.track_conversion({
            "lead_id": lead.id,
            "customer_id": "patient-9",
            "conversion_value": 1200,
            "user_id": "dr-lee",
        })
        assert converted.status == LeadStatus.CONVERTED
        assert converted.converted_at == clock.now
        assert converted.conversion_value == 1200
        assert converted.next_action_at is None

        entry = next(
            e for e in manager.get_activities(lead.id) if e.activity_type == ActivityType.LEAD_CONVERTED
        )
        assert entry.metadata["days_to_convert"] == 3
        assert str(entry.actor) == "user:dr-lee"

    def test_convert_twice(self, manager):
        lead = manager.capture_lead(casual_visitor()).lead
        manager.track_conversion({"lead_id": lead.id, "customer_id": "p-1"})
        with pytest.raises(InvalidStateError):
            manager.track_conversion({"lead_id": lead.id, "customer_id": "p-1"})

    def test_activities_for_missing_lead(self, manager):
        with pytest.raises(NotFoundError):
            manager.get_activities(404)


class TestSourceAnalytics:

    def test_grouped_by_source(self, manager):
        manager.capture_lead(casual_visitor(email="a@example.com"))
        manager.capture_lead(casual_visitor(email="b@example.com"))
        hot = manager.capture_lead(engaged_referral()).lead
        manager.track_conversion({"lead_id": hot.id, "customer_id": "p-1"})

        report = manager.source_analytics()
        assert [s.source for s in report] == [LeadSource.WEBSITE.value, LeadSource.REFERRAL.value]
        website, referral = report
        assert website.total_leads == 2
        assert website.avg_quality_score == 15
        assert website.conversion_rate == 0
        assert referral.conversion_rate == 1.0
