"""Send-time selection for nurture messages.

Mid-week mornings and early afternoons get the best response. Given the same
engagement snapshot and reference instant the result is always the same.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Los_Angeles"

# Python weekday (Mon=0) -> days until the next Tue/Wed/Thu
DAYS_TO_BEST_DAY = {0: 1, 1: 0, 2: 0, 3: 0, 4: 4, 5: 3, 6: 2}

MORNING = time(10, 0)
AFTERNOON = time(14, 0)


@dataclass(frozen=True)
class OptimalTiming:
    """Recommended send slot for a lead."""

    best_day: str
    best_time: str
    timezone: str
    channel: str
    next_send_time: datetime
    reasoning: str


def _time_of_day(time_on_site_seconds: int, emails_opened: int, links_clicked: int):
    slot, reasoning = MORNING, "Default mid-morning time for professional communications"

    if time_on_site_seconds > 300 and emails_opened > 0:
        slot, reasoning = AFTERNOON, "Lead shows strong engagement; optimal afternoon timing for follow-up"

    # Heavy clickers respond best in the morning, overriding the afternoon slot
    if links_clicked > 2:
        slot, reasoning = MORNING, "High-engagement lead; morning timing for immediate action"

    return slot, reasoning


def calculate_optimal_timing(
    time_on_site_seconds: int,
    emails_opened: int,
    links_clicked: int,
    reference: datetime,
    tz_name: Optional[str] = None,
    channel: str = "email",
) -> OptimalTiming:
    """Next Tuesday-Thursday slot at or after ``reference``.

    The returned ``next_send_time`` is in UTC. If the slot on the chosen day
    has already passed it moves forward exactly one week.
    """
    tz_name = tz_name or DEFAULT_TIMEZONE
    zone = ZoneInfo(tz_name)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    local_reference = reference.astimezone(zone)

    target_date = local_reference.date() + timedelta(days=DAYS_TO_BEST_DAY[local_reference.weekday()])
    slot, reasoning = _time_of_day(time_on_site_seconds, emails_opened, links_clicked)

    send_at = datetime.combine(target_date, slot, tzinfo=zone)
    if send_at <= local_reference:
        send_at = datetime.combine(target_date + timedelta(days=7), slot, tzinfo=zone)

    return OptimalTiming(
        best_day=send_at.strftime("%A"),
        best_time=slot.strftime("%H:%M"),
        timezone=tz_name,
        channel=channel,
        next_send_time=send_at.astimezone(timezone.utc),
        reasoning=reasoning,
    )
