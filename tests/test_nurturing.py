"""Tests for sequences, personalization, timing and engagement rules."""

from datetime import datetime, timezone

import pytest

from practice_growth.exceptions import NotFoundError
from practice_growth.nurturing.engagement import (
    EngagementType,
    engagement_score,
    evaluate_event,
)
from practice_growth.nurturing.sequences import (
    SEQUENCE_CATALOG,
    EmailStep,
    NurtureSequenceTemplate,
    ContentType,
    select_sequence,
    starting_step,
)
from practice_growth.nurturing.templates import (
    PracticeProfile,
    find_unresolved_tokens,
    personalization,
    render_content,
)
from practice_growth.nurturing.timing import calculate_optimal_timing


class TestSequenceCatalog:

    def test_catalog_contents(self):
        assert SEQUENCE_CATALOG.ids == ["awareness", "consideration", "decision", "re_engagement"]
        lengths = {t.id: t.length for t in SEQUENCE_CATALOG.templates}
        assert lengths == {"awareness": 5, "consideration": 4, "decision": 3, "re_engagement": 3}

    def test_unknown_sequence(self):
        with pytest.raises(NotFoundError):
            SEQUENCE_CATALOG.get("winback")

    def test_missing_step(self):
        with pytest.raises(NotFoundError):
            SEQUENCE_CATALOG.get("decision").get_step(4)

    def test_sms_steps_have_no_subject(self):
        for template in SEQUENCE_CATALOG.templates:
            for step in template.steps:
                if step.channel.value == "sms":
                    assert step.subject is None
                else:
                    assert step.subject

    def test_bad_numbering_rejected(self):
        with pytest.raises(ValueError):
            NurtureSequenceTemplate(
                "x", "X", "", "", 0.1,
                (EmailStep(2, 0, "Hi", "Body", ContentType.EDUCATIONAL),),
            )

    def test_unknown_token_rejected(self):
        with pytest.raises(ValueError):
            NurtureSequenceTemplate(
                "x", "X", "", "", 0.1,
                (EmailStep(1, 0, "Hi", "Hello {{nickname}}", ContentType.EDUCATIONAL),),
            )


class TestSelectSequence:

    def test_idle_lead_gets_re_engagement(self):
        assert select_sequence(20, 0, 0.1, 25, 10).id == "re_engagement"

    def test_idle_but_engaged_lead_is_not_re_engaged(self):
        assert select_sequence(20, 0, 0.1, 25, 20).id == "awareness"

    def test_decision(self):
        assert select_sequence(70, 50, 0.5, 1, 0).id == "decision"

    def test_consideration(self):
        assert select_sequence(40, 0, 0.1, 1, 0).id == "consideration"
        assert select_sequence(10, 0, 0.3, 1, 0).id == "consideration"

    def test_awareness(self):
        assert select_sequence(10, 0, 0.1, 1, 0).id == "awareness"

    def test_deterministic(self):
        picks = {select_sequence(55, 40, 0.35, 5, 15).id for _ in range(20)}
        assert picks == {"consideration"}

    def test_starting_step(self):
        decision = SEQUENCE_CATALOG.get("decision")
        assert starting_step(decision, None, None) == 1
        assert starting_step(decision, "awareness", 4) == 1
        assert starting_step(decision, "decision", 2) == 2
        assert starting_step(decision, "decision", 9) == 3


class TestTemplates:

    def test_render_known_tokens(self):
        practice = PracticeProfile(name="Spine Center", phone="555-0100", booking_link="https://b.example")
        variables = personalization("Ana", "Ruiz", practice)
        text = render_content("Hi {{firstName}}, call {{practicePhone}} or book at {{ bookingLink }}", variables)
        assert text == "Hi Ana, call 555-0100 or book at https://b.example"

    def test_missing_first_name(self):
        variables = personalization(None, None, PracticeProfile())
        assert render_content("Hi {{firstName}}", variables) == "Hi there"

    def test_unknown_token_left_in_place(self):
        text = render_content("Hi {{nickname}}", personalization("Ana", "", PracticeProfile()))
        assert find_unresolved_tokens(text) == ["{{nickname}}"]

    def test_catalog_renders_completely(self):
        variables = personalization("Ana", "Ruiz", PracticeProfile())
        for template in SEQUENCE_CATALOG.templates:
            for step in template.steps:
                assert find_unresolved_tokens(render_content(step.body, variables)) == []


class TestTiming:

    def test_monday_moves_to_tuesday(self):
        monday = datetime(2024, 3, 4, 8, 0, tzinfo=timezone.utc)
        result = calculate_optimal_timing(0, 0, 0, monday, "UTC")
        assert result.best_day == "Tuesday"
        assert result.next_send_time == datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)

    def test_passed_slot_moves_one_week(self):
        tuesday_noon = datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)
        result = calculate_optimal_timing(0, 0, 0, tuesday_noon, "UTC")
        assert result.next_send_time == datetime(2024, 3, 12, 10, 0, tzinfo=timezone.utc)

    def test_engaged_lead_gets_afternoon(self):
        wednesday = datetime(2024, 3, 6, 9, 0, tzinfo=timezone.utc)
        result = calculate_optimal_timing(400, 1, 0, wednesday, "UTC")
        assert result.best_time == "14:00"

    def test_heavy_clicker_gets_morning(self):
        wednesday = datetime(2024, 3, 6, 9, 0, tzinfo=timezone.utc)
        result = calculate_optimal_timing(400, 1, 3, wednesday, "UTC")
        assert result.best_time == "10:00"

    def test_timezone_conversion(self):
        # After the March 10 DST change Los Angeles is UTC-7
        wednesday = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)
        result = calculate_optimal_timing(0, 0, 0, wednesday, "America/Los_Angeles")
        assert result.next_send_time == datetime(2024, 3, 13, 17, 0, tzinfo=timezone.utc)
        assert result.next_send_time.tzinfo == timezone.utc

    def test_naive_reference_treated_as_utc(self):
        naive = datetime(2024, 3, 4, 8, 0)
        aware = naive.replace(tzinfo=timezone.utc)
        assert (
            calculate_optimal_timing(0, 0, 0, naive, "UTC").next_send_time
            == calculate_optimal_timing(0, 0, 0, aware, "UTC").next_send_time
        )

    def test_deterministic(self):
        reference = datetime(2024, 3, 8, 16, 30, tzinfo=timezone.utc)
        results = {calculate_optimal_timing(100, 2, 1, reference, "UTC") for _ in range(5)}
        assert len(results) == 1


class TestEngagement:

    def test_score_caps(self):
        assert engagement_score(10, 0, 0, step_number=5) == 30
        assert engagement_score(0, 10, 0, step_number=5) == 40
        assert engagement_score(10, 10, 10, step_number=5) == 100

    def test_fast_responder_bonus(self):
        assert engagement_score(3, 0, 0, step_number=2) == 40
        assert engagement_score(3, 0, 0, step_number=3) == 30
        assert engagement_score(1, 0, 0, step_number=1) == 10

    def test_reply_forces_hot(self):
        effect = evaluate_event(EngagementType.SMS_REPLY, 0)
        assert effect.force_hot
        assert effect.urgency_delta == 25
        assert effect.requires_human_follow_up

    def test_second_click_escalates(self):
        assert not evaluate_event(EngagementType.LINK_CLICKED, 1).should_escalate
        effect = evaluate_event(EngagementType.LINK_CLICKED, 2)
        assert effect.should_escalate
        assert effect.urgency_delta == 15

    def test_open_has_no_effect(self):
        effect = evaluate_event(EngagementType.EMAIL_OPENED, 5)
        assert effect.urgency_delta == 0
        assert not effect.should_escalate
