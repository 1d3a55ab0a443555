"""Decide which opportunities a viewer may see.

Everything here is a pure function of its arguments: records are filtered
and sorted, never modified.
"""

from collections.abc import Iterable
from datetime import UTC, date, datetime

from campuscares.core.errors import PermissionDenied
from campuscares.engine.time_policy import event_start, event_timezone
from campuscares.models import OpportunityRead, Viewer


def local_today() -> date:
    return datetime.now(UTC).astimezone(event_timezone()).date()


def in_audience(opportunity: OpportunityRead, viewer: Viewer) -> bool:
    """True when the visibility set is empty, the viewer is an admin, or they share an organization."""
    if not opportunity.visibility or viewer.admin:
        return True
    return not viewer.organizations.isdisjoint(opportunity.visibility)


def is_visible(
    opportunity: OpportunityRead, viewer: Viewer, today: date | None = None
) -> bool:
    """
    Return True if the opportunity belongs in the viewer's listing.

    Requires approval, a start date of today or later (date only, so an
    event stays listed for its whole start day), and the viewer being in
    the opportunity's audience.
    """
    if not opportunity.approved:
        return False
    if opportunity.date < (today or local_today()):
        return False
    return in_audience(opportunity, viewer)


def _start_key(opportunity: OpportunityRead):
    return (event_start(opportunity), opportunity.id)


def visible_listing(
    opportunities: Iterable[OpportunityRead],
    viewer: Viewer,
    today: date | None = None,
    cause: str | None = None,
) -> list[OpportunityRead]:
    """Visible opportunities sorted by start, optionally narrowed to one cause."""
    today = today or local_today()
    listing = [
        opportunity
        for opportunity in opportunities
        if is_visible(opportunity, viewer, today)
        and (cause is None or cause in opportunity.causes)
    ]
    return sorted(listing, key=_start_key)


def moderation_listing(
    opportunities: Iterable[OpportunityRead], viewer: Viewer
) -> list[OpportunityRead]:
    """Pending opportunities for administrators. Bypasses ``is_visible``."""
    if not viewer.admin:
        raise PermissionDenied("Only administrators can view pending opportunities")
    return sorted(
        (opportunity for opportunity in opportunities if not opportunity.approved),
        key=_start_key,
    )
