"""Opportunity routes: listings, details, creation, moderation and edits."""
from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Response, UploadFile
from pydantic import ValidationError as SchemaError

from campuscares.core.errors import NotFound
from campuscares.engine.approval import ApprovalWorkflow, state_of
from campuscares.engine.details import OpportunityEditor
from campuscares.engine.ledger import participant_count
from campuscares.engine.roles import may_view
from campuscares.engine.time_policy import (
    can_unregister,
    display_end_time,
    format_time_until,
)
from campuscares.engine.visibility import moderation_listing, visible_listing
from campuscares.models import (
    OpportunityCreate,
    OpportunityDetail,
    OpportunityRead,
    OpportunityUpdate,
    Viewer,
)
from campuscares.repository import OpportunityRepository
from campuscares.routes.deps import get_repository, get_viewer

router = APIRouter(prefix="/opportunities", tags=["opportunities"])


def to_detail(opportunity: OpportunityRead) -> OpportunityDetail:
    """Add participant counts and display strings to a record."""
    window = can_unregister(opportunity)
    count = participant_count(opportunity)
    return OpportunityDetail(
        **opportunity.model_dump(),
        state=state_of(opportunity),
        participant_count=count,
        remaining_slots=max(opportunity.total_slots - count, 0),
        end_time=display_end_time(opportunity),
        time_until=format_time_until(window.hours_remaining),
        can_unregister=window.allowed,
    )


@router.get("", response_model=list[OpportunityRead])
def list_opportunities(
    cause: str | None = None,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    List opportunities the viewer may see.

    Only approved opportunities starting today or later are included,
    narrowed by organization visibility, sorted by start time. Pass
    ``cause`` to keep only one category.
    """
    return visible_listing(repository.refresh_all(), viewer, cause=cause)


@router.get("/pending", response_model=list[OpportunityRead])
def list_pending(
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Moderation queue of unapproved opportunities. Administrators only."""
    return moderation_listing(repository.store.list_unapproved_opportunities(), viewer)


@router.get("/{opportunity_id}", response_model=OpportunityDetail)
def get_opportunity(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    Show one opportunity with its participant count and countdown.

    Opportunities the viewer may not see are reported as missing.
    """
    opportunity = repository.get(opportunity_id)
    if not may_view(opportunity, viewer):
        raise NotFound(f"Opportunity {opportunity_id} not found")
    return to_detail(opportunity)


@router.post("", response_model=OpportunityRead, status_code=201)
def create_opportunity(
    draft: OpportunityCreate,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Create an opportunity. Non-administrators create it pending approval."""
    return ApprovalWorkflow(repository).create(viewer, draft)


@router.post("/upload", response_model=OpportunityRead, status_code=201)
def create_opportunity_with_image(
    payload: str = Form(...),
    image: UploadFile | None = File(default=None),
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    Create an opportunity from a multipart form.

    ``payload`` holds the same JSON document as the plain create route. The
    image is forwarded to the store untouched.
    """
    try:
        draft = OpportunityCreate.model_validate_json(payload)
    except SchemaError as e:
        raise HTTPException(status_code=422, detail=e.errors()) from e

    upload = None
    if image is not None:
        upload = (
            image.filename or "image",
            image.file.read(),
            image.content_type or "application/octet-stream",
        )
    return ApprovalWorkflow(repository).create(viewer, draft, upload)


@router.patch("/{opportunity_id}", response_model=OpportunityRead | None)
def update_opportunity(
    opportunity_id: int,
    changes: OpportunityUpdate,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    return OpportunityEditor(repository).update_details(viewer, opportunity_id, changes)


@router.put("/{opportunity_id}/slots", response_model=OpportunityRead | None)
def set_slot_limit(
    opportunity_id: int,
    total_slots: int = Body(..., embed=True),
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Change capacity. Rejected below the current participant count."""
    return OpportunityEditor(repository).set_slot_limit(viewer, opportunity_id, total_slots)


@router.post("/{opportunity_id}/comments", response_model=OpportunityRead | None)
def add_comment(
    opportunity_id: int,
    text: str = Body(..., embed=True),
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    return OpportunityEditor(repository).add_comment(viewer, opportunity_id, text)


@router.post("/{opportunity_id}/approve", response_model=OpportunityRead | None)
def approve_opportunity(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    return ApprovalWorkflow(repository).approve(viewer, opportunity_id)


@router.post("/{opportunity_id}/unapprove", response_model=OpportunityRead | None)
def unapprove_opportunity(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    return ApprovalWorkflow(repository).unapprove(viewer, opportunity_id)


@router.delete("/{opportunity_id}", status_code=204)
def delete_opportunity(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Delete an opportunity and all its registrations."""
    ApprovalWorkflow(repository).delete(viewer, opportunity_id)
    return Response(status_code=204)
