"""Registration ledger: who is signed up for an opportunity.

The participant set of an opportunity is its host plus every user with an
active registration. It is derived from the record each time it is needed,
never stored separately. Checks made here run against a freshly fetched
record and are advisory; the store repeats them atomically when it commits.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from campuscares.core.errors import (
    AlreadyRegistered,
    CapacityExceeded,
    NotApproved,
    NotFound,
    NotRegistered,
    PermissionDenied,
    WindowClosed,
)
from campuscares.engine.time_policy import can_unregister, hours_until_start
from campuscares.engine.visibility import in_audience
from campuscares.models import OpportunityRead, RegistrationSummary, Viewer
from campuscares.repository import OpportunityRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Participant:
    """A member of an opportunity's participant set.

    ``attended`` is None for an organization host: only people attend.
    """

    kind: Literal["user", "organization"]
    id: int
    registered: bool = True
    attended: bool | None = False
    is_host: bool = False


@dataclass(frozen=True)
class Availability:
    total_slots: int
    participant_count: int

    @property
    def remaining_slots(self) -> int:
        return max(self.total_slots - self.participant_count, 0)

    @property
    def is_full(self) -> bool:
        return self.participant_count >= self.total_slots


def host_participant(opportunity: OpportunityRead) -> Participant:
    if opportunity.host_user_id is not None:
        return Participant(
            kind="user",
            id=opportunity.host_user_id,
            attended=opportunity.host_attended,
            is_host=True,
        )
    return Participant(
        kind="organization",
        id=opportunity.host_org_id,
        attended=None,
        is_host=True,
    )


def participants(opportunity: OpportunityRead) -> list[Participant]:
    """Host first, then active registrants in signup order."""
    members = [host_participant(opportunity)]
    for registration in opportunity.registrations:
        if not registration.registered or registration.user_id == opportunity.host_user_id:
            continue
        members.append(
            Participant(kind="user", id=registration.user_id, attended=registration.attended)
        )
    return members


def participant_count(opportunity: OpportunityRead) -> int:
    """People holding a slot. An organization host is listed but takes no slot."""
    return sum(1 for participant in participants(opportunity) if participant.kind == "user")


def active_registration(
    opportunity: OpportunityRead, user_id: int
) -> RegistrationSummary | None:
    for registration in opportunity.registrations:
        if registration.user_id == user_id and registration.registered:
            return registration
    return None


def is_participant(opportunity: OpportunityRead, user_id: int) -> bool:
    return opportunity.host_user_id == user_id or active_registration(opportunity, user_id) is not None


class RegistrationLedger:
    """Signup and unregister operations for viewers."""

    def __init__(self, repository: OpportunityRepository):
        self.repository = repository

    def availability(self, opportunity_id: int) -> Availability:
        opportunity = self.repository.get(opportunity_id, refresh=True)
        return Availability(
            total_slots=opportunity.total_slots,
            participant_count=participant_count(opportunity),
        )

    def sign_up(self, viewer: Viewer, opportunity_id: int) -> OpportunityRead | None:
        """
        Register the viewer for an opportunity.

        An external ``redirect_url`` does not gate local registration: the
        slot is claimed here regardless of what the external site says.

        Raises:
            AlreadyRegistered: Viewer already active, or viewer is the host.
            NotFound: Viewer outside the visibility set, or the event has
                already started.
            NotApproved: Opportunity pending and viewer not privileged.
            CapacityExceeded: No free slot.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)

        if opportunity.host_user_id == viewer.id:
            raise AlreadyRegistered("You are hosting this opportunity")
        if active_registration(opportunity, viewer.id) is not None:
            raise AlreadyRegistered("Already registered for this opportunity")
        if not in_audience(opportunity, viewer):
            raise NotFound(f"Opportunity {opportunity_id} not found")
        if hours_until_start(opportunity) <= 0:
            raise NotFound("This opportunity has already started")
        if not opportunity.approved and not viewer.privileged:
            raise NotApproved("This opportunity has not been approved yet")
        count = participant_count(opportunity)
        if count >= opportunity.total_slots:
            raise CapacityExceeded(
                "This opportunity is full",
                total_slots=opportunity.total_slots,
                participant_count=count,
            )

        def project(record: OpportunityRead) -> OpportunityRead:
            record.registrations = [
                r for r in record.registrations if r.user_id != viewer.id
            ] + [RegistrationSummary(user_id=viewer.id)]
            return record

        updated = self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.register(
                viewer.id, opportunity_id, allow_pending=viewer.privileged
            ),
        )
        if opportunity.redirect_url:
            logger.info(
                f"User {viewer.id} registered for opportunity {opportunity_id}; "
                f"external signup at {opportunity.redirect_url} is left to the caller"
            )
        else:
            logger.info(f"User {viewer.id} registered for opportunity {opportunity_id}")
        return updated

    def un_sign_up(
        self, viewer: Viewer, opportunity_id: int, now: datetime | None = None
    ) -> OpportunityRead | None:
        """
        Cancel the viewer's registration.

        The cancellation window is enforced here, whatever the presentation
        layer showed.

        Raises:
            WindowClosed: Too close to the start. Carries hours_remaining.
            PermissionDenied: The host's participation cannot be cancelled.
            NotRegistered: No active registration.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)

        window = can_unregister(opportunity, now)
        if not window.allowed:
            logger.info(
                f"User {viewer.id} blocked from unregistering from opportunity "
                f"{opportunity_id}: {window.hours_remaining:.1f} hours remaining"
            )
            raise WindowClosed(window.hours_remaining, window.window_hours)
        if opportunity.host_user_id == viewer.id:
            raise PermissionDenied("The host cannot unregister from their own opportunity")
        if active_registration(opportunity, viewer.id) is None:
            raise NotRegistered("Not registered for this opportunity")

        def project(record: OpportunityRead) -> OpportunityRead:
            for registration in record.registrations:
                if registration.user_id == viewer.id:
                    registration.registered = False
            return record

        updated = self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.unregister(viewer.id, opportunity_id),
        )
        logger.info(f"User {viewer.id} unregistered from opportunity {opportunity_id}")
        return updated
