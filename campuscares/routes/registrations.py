"""Registration routes: signing up, unregistering and capacity probes."""
from dataclasses import asdict

from fastapi import APIRouter, Depends

from campuscares.core.errors import NotFound
from campuscares.engine.ledger import RegistrationLedger, participants
from campuscares.engine.roles import may_view
from campuscares.engine.time_policy import can_unregister, format_time_until
from campuscares.models import OpportunityRead, Viewer
from campuscares.repository import OpportunityRepository
from campuscares.routes.deps import get_repository, get_viewer

router = APIRouter(prefix="/opportunities/{opportunity_id}", tags=["registrations"])


@router.post("/signup", response_model=OpportunityRead | None)
def sign_up(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    Claim a slot for the viewer.

    Fails with 409 when the opportunity is full, pending or already joined.
    """
    return RegistrationLedger(repository).sign_up(viewer, opportunity_id)


@router.post("/unregister", response_model=OpportunityRead | None)
def un_sign_up(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    Give up the viewer's slot.

    Blocked inside the cancellation window; the error body carries
    ``hours_remaining``.
    """
    return RegistrationLedger(repository).un_sign_up(viewer, opportunity_id)


@router.get("/availability")
def availability(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Advisory capacity probe. Signup re-checks capacity atomically."""
    if not may_view(repository.get(opportunity_id), viewer):
        raise NotFound(f"Opportunity {opportunity_id} not found")
    result = RegistrationLedger(repository).availability(opportunity_id)
    return {
        "total_slots": result.total_slots,
        "participant_count": result.participant_count,
        "remaining_slots": result.remaining_slots,
        "is_full": result.is_full,
    }


@router.get("/unregister-window")
def unregister_window(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Whether the unregister control should be enabled right now."""
    opportunity = repository.get(opportunity_id)
    if not may_view(opportunity, viewer):
        raise NotFound(f"Opportunity {opportunity_id} not found")
    window = can_unregister(opportunity)
    return {
        "allowed": window.allowed,
        "hours_remaining": round(window.hours_remaining, 2),
        "window_hours": window.window_hours,
        "time_until": format_time_until(window.hours_remaining),
    }


@router.get("/participants")
def list_participants(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Host first, then active registrants in signup order."""
    opportunity = repository.get(opportunity_id)
    if not may_view(opportunity, viewer):
        raise NotFound(f"Opportunity {opportunity_id} not found")
    return [asdict(participant) for participant in participants(opportunity)]
