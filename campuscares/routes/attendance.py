"""Attendance routes for hosts and administrators."""
from dataclasses import asdict

from fastapi import APIRouter, Body, Depends
from fastapi.responses import PlainTextResponse

from campuscares.engine.attendance import AttendanceRecorder
from campuscares.models import Viewer
from campuscares.repository import OpportunityRepository
from campuscares.routes.deps import get_repository, get_viewer

router = APIRouter(prefix="/opportunities/{opportunity_id}", tags=["attendance"])


@router.put("/attendance")
def mark_attendance(
    opportunity_id: int,
    user_ids: list[int] = Body(..., embed=True),
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """
    Mark the given participants as attended.

    Each user is marked on its own. The response lists who was marked and
    the error for each user that was not, so callers can retry just those.
    """
    report = AttendanceRecorder(repository).mark_many(viewer, opportunity_id, user_ids)
    return {
        "marked": report.marked,
        "failed": {str(user_id): e.to_dict() for user_id, e in report.failed.items()},
        "all_marked": report.all_marked,
    }


@router.get("/roster")
def roster(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    participants = AttendanceRecorder(repository).roster(viewer, opportunity_id)
    return [asdict(participant) for participant in participants]


@router.get("/roster.csv", response_class=PlainTextResponse)
def roster_csv(
    opportunity_id: int,
    viewer: Viewer = Depends(get_viewer),
    repository: OpportunityRepository = Depends(get_repository),
):
    """Participant export for contact lists."""
    return PlainTextResponse(
        AttendanceRecorder(repository).roster_csv(viewer, opportunity_id),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="opportunity-{opportunity_id}-roster.csv"'
        },
    )
