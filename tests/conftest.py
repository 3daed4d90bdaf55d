"""Shared fixtures: temporary databases and a controllable clock."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from practice_growth.collaborators import MemoryAssignmentNotifier, MemoryAuditSink, OutboxDispatcher
from practice_growth.leads.manager import LeadManager
from practice_growth.nurturing.engine import NurtureEngine
from practice_growth.nurturing.templates import PracticeProfile
from practice_growth.routing.matcher import StaffAssignmentMatcher
from practice_growth.storage.database import LeadDatabase

# A Tuesday afternoon
START = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)


class QualityRecordingMatcher(StaffAssignmentMatcher):
    """Remembers the lead quality each assignment was decided on."""

    def __init__(self):
        super().__init__()
        self.qualities = []

    def select(self, roster, stats, lead_quality, preferred_staff_id=None):
        self.qualities.append(lead_quality)
        return super().select(roster, stats, lead_quality, preferred_staff_id)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def temp_data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_data_dir):
    return LeadDatabase(temp_data_dir / "growth.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit():
    return MemoryAuditSink()


@pytest.fixture
def notifier():
    return MemoryAssignmentNotifier()


@pytest.fixture
def manager(db, clock, audit, notifier):
    return LeadManager(db, audit_sink=audit, notifier=notifier, clock=clock)


@pytest.fixture
def dispatcher():
    return OutboxDispatcher()


@pytest.fixture
def engine(db, manager, dispatcher):
    practice = PracticeProfile(name="Spine Center", phone="555-0100", booking_link="https://booking.spine.com")
    return NurtureEngine(db, manager, practice=practice, dispatcher=dispatcher, timezone_name="UTC")


@pytest.fixture
def recording_matcher():
    return QualityRecordingMatcher()
