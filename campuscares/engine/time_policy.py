"""Time rules for opportunities.

Opportunities are stored as a civil date, a civil time and a duration in
minutes. They are interpreted in the configured event timezone, so daylight
saving transitions are handled by ``zoneinfo`` rather than a fixed offset.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from campuscares.core.config import settings
from campuscares.models import OpportunityRead


@dataclass(frozen=True)
class UnregisterWindow:
    """Whether a registrant may still cancel, and how long until the event."""

    allowed: bool
    hours_remaining: float
    window_hours: float


def event_timezone() -> ZoneInfo:
    return ZoneInfo(settings.event_timezone)


def event_start(opportunity: OpportunityRead, tz: ZoneInfo | None = None) -> datetime:
    """Timezone-aware start instant of the opportunity."""
    return datetime.combine(opportunity.date, opportunity.time, tzinfo=tz or event_timezone())


def event_end(opportunity: OpportunityRead, tz: ZoneInfo | None = None) -> datetime:
    return event_start(opportunity, tz) + timedelta(minutes=opportunity.duration)


def hours_until_start(opportunity: OpportunityRead, now: datetime | None = None) -> float:
    now = now or datetime.now(UTC)
    return (event_start(opportunity) - now).total_seconds() / 3600


def can_unregister(
    opportunity: OpportunityRead,
    now: datetime | None = None,
    window_hours: float | None = None,
) -> UnregisterWindow:
    """
    Check whether a registrant may unregister at ``now``.

    Cancelling is allowed only while strictly more than ``window_hours``
    remain before the start. The same check backs the presentation hint and
    the authoritative test inside the ledger.
    """
    if window_hours is None:
        window_hours = settings.cancellation_window_hours
    remaining = hours_until_start(opportunity, now)
    return UnregisterWindow(
        allowed=remaining > window_hours,
        hours_remaining=remaining,
        window_hours=window_hours,
    )


def display_end_time(opportunity: OpportunityRead) -> str:
    """Human-readable local end time, e.g. ``"2:30 PM"``."""
    end = event_end(opportunity)
    hour = end.hour % 12 or 12
    return f"{hour}:{end.minute:02d} {'AM' if end.hour < 12 else 'PM'}"


def format_time_until(hours: float) -> str:
    """
    Format a countdown for display.

    Examples: "Event has started", "45 minutes", "11 hours, 30 minutes",
    "2 days, 5 hours".
    """
    if hours <= 0:
        return "Event has started"

    if hours < 1:
        return f"{int(hours * 60)} minutes"

    if hours < 24:
        whole = int(hours)
        minutes = int((hours - whole) * 60)
        if minutes > 0:
            return f"{whole} hours, {minutes} minutes"
        return f"{whole} hours"

    days = int(hours // 24)
    remaining_hours = int(hours % 24)
    if remaining_hours > 0:
        return f"{days} days, {remaining_hours} hours"
    return f"{days} days"
