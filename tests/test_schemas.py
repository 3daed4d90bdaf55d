"""Tests for inbound event validation."""

import pytest

from practice_growth.exceptions import ValidationFailure
from practice_growth.leads.schemas import (
    ConversionEvent,
    EngagementEvent,
    LeadCaptureEvent,
    StaffRosterEntry,
    StatusChangeCommand,
    parse_input,
)
from practice_growth.nurturing.engagement import EngagementType
from practice_growth.storage.models import Actor, LeadSource, LeadStatus, StaffRole


class TestLeadCaptureEvent:

    def test_defaults_and_normalization(self):
        event = parse_input(LeadCaptureEvent, {
            "first_name": " Ana ",
            "last_name": "Ruiz",
            "email": "Ana@Example.COM",
            "phone": "(555) 010-2000",
            "source": "referral",
        })
        assert event.first_name == "Ana"
        assert event.email == "ana@example.com"
        assert event.phone == "5550102000"
        assert event.source == LeadSource.REFERRAL
        assert event.website_visits == 1
        assert event.page_views == 1

    @pytest.mark.parametrize("data", [
        {"first_name": "  ", "last_name": "Ruiz"},
        {"first_name": "Ana"},
        {"first_name": "Ana", "last_name": "Ruiz", "email": "not-an-email"},
        {"first_name": "Ana", "last_name": "Ruiz", "phone": "12345"},
        {"first_name": "Ana", "last_name": "Ruiz", "website_visits": -1},
        {"first_name": "Ana", "last_name": "Ruiz", "source": "billboard"},
    ])
    def test_rejects_bad_input(self, data):
        with pytest.raises(ValidationFailure):
            parse_input(LeadCaptureEvent, data)

    def test_blank_email_treated_as_missing(self):
        event = parse_input(LeadCaptureEvent, {"first_name": "Ana", "last_name": "Ruiz", "email": ""})
        assert event.email is None


class TestCommands:

    def test_engagement_event(self):
        event = parse_input(EngagementEvent, {"lead_id": 3, "event": "sms_reply", "step_number": 2})
        assert event.event == EngagementType.SMS_REPLY

    def test_engagement_step_must_be_positive(self):
        with pytest.raises(ValidationFailure):
            parse_input(EngagementEvent, {"lead_id": 3, "event": "email_opened", "step_number": 0})

    def test_status_change_actor(self):
        command = parse_input(StatusChangeCommand, {"lead_id": 1, "status": "cold", "user_id": "dr-lee"})
        assert command.status == LeadStatus.COLD
        assert command.actor == Actor.user("dr-lee")
        assert parse_input(StatusChangeCommand, {"lead_id": 1, "status": "cold"}).actor == Actor.system()

    def test_conversion_requires_customer(self):
        with pytest.raises(ValidationFailure):
            parse_input(ConversionEvent, {"lead_id": 1, "customer_id": ""})
        with pytest.raises(ValidationFailure):
            parse_input(ConversionEvent, {"lead_id": 1, "customer_id": "c1", "conversion_value": -5})

    def test_roster_entry(self):
        member = parse_input(StaffRosterEntry, {"id": "amy", "name": "Amy", "role": "provider"}).to_member()
        assert member.role == StaffRole.PROVIDER
        assert member.can_own_leads
