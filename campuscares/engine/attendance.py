"""Post-event attendance marking and participant rosters.

Each user is marked in its own store call. A batch is not a transaction:
some users may be marked while others fail, and the report says which.
"""
import csv
import io
import logging
from dataclasses import dataclass, field

from campuscares.core.errors import EngineError, NotRegistered
from campuscares.engine.ledger import Participant, is_participant, participants
from campuscares.engine.roles import require_host_or_admin
from campuscares.models import OpportunityRead, Viewer
from campuscares.repository import OpportunityRepository

logger = logging.getLogger(__name__)

ROSTER_COLUMNS = ["kind", "id", "is_host", "registered", "attended"]


@dataclass
class AttendanceReport:
    """Outcome of a batch marking pass."""

    marked: list[int] = field(default_factory=list)
    failed: dict[int, EngineError] = field(default_factory=dict)

    @property
    def all_marked(self) -> bool:
        return not self.failed


def has_attended(opportunity: OpportunityRead, user_id: int) -> bool:
    if opportunity.host_user_id == user_id:
        return opportunity.host_attended
    return any(
        r.user_id == user_id and r.registered and r.attended
        for r in opportunity.registrations
    )


class AttendanceRecorder:
    def __init__(self, repository: OpportunityRepository):
        self.repository = repository

    def mark_attendance(
        self, actor: Viewer, opportunity_id: int, user_id: int
    ) -> OpportunityRead | None:
        """
        Record that a participant attended. Marking twice is a no-op.

        Raises:
            PermissionDenied: Actor is neither host nor administrator.
            NotRegistered: The user is not a participant.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "mark attendance")
        return self._mark(opportunity, user_id)

    def mark_many(
        self, actor: Viewer, opportunity_id: int, user_ids: list[int]
    ) -> AttendanceReport:
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "mark attendance")

        report = AttendanceReport()
        for user_id in dict.fromkeys(user_ids):
            try:
                self._mark(self.repository.get(opportunity_id), user_id)
            except EngineError as e:
                logger.warning(
                    f"Could not mark user {user_id} on opportunity {opportunity_id}: {e.code}"
                )
                report.failed[user_id] = e
            else:
                report.marked.append(user_id)

        current = self.repository.peek(opportunity_id)
        if current is not None and report.marked and not current.attendance_marked:
            self.repository.mutate(
                opportunity_id,
                lambda record: record.model_copy(update={"attendance_marked": True}),
                lambda: self.repository.store.update_opportunity(
                    opportunity_id, {"attendance_marked": True}
                ),
            )
        logger.info(
            f"Attendance pass on opportunity {opportunity_id}: "
            f"{len(report.marked)} marked, {len(report.failed)} failed"
        )
        return report

    def roster(self, actor: Viewer, opportunity_id: int) -> list[Participant]:
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "view the roster")
        return participants(opportunity)

    def roster_csv(self, actor: Viewer, opportunity_id: int) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(ROSTER_COLUMNS)
        for participant in self.roster(actor, opportunity_id):
            writer.writerow([getattr(participant, column) for column in ROSTER_COLUMNS])
        return buffer.getvalue()

    def _mark(self, opportunity: OpportunityRead, user_id: int) -> OpportunityRead | None:
        if not is_participant(opportunity, user_id):
            raise NotRegistered(
                f"User {user_id} is not a participant of opportunity {opportunity.id}"
            )
        if has_attended(opportunity, user_id):
            return opportunity

        def project(record: OpportunityRead) -> OpportunityRead:
            if record.host_user_id == user_id:
                record.host_attended = True
            for registration in record.registrations:
                if registration.user_id == user_id:
                    registration.attended = True
            record.attendance_marked = True
            return record

        updated = self.repository.mutate(
            opportunity.id,
            project,
            lambda: self.repository.store.mark_attendance(user_id, opportunity.id),
        )
        logger.info(f"Marked user {user_id} as attended on opportunity {opportunity.id}")
        return updated
