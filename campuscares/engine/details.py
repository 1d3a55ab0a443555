"""Host and administrator edits to an existing opportunity."""
import logging
from typing import Any

from campuscares.core.errors import ValidationError
from campuscares.engine.approval import unique_causes
from campuscares.engine.ledger import participant_count
from campuscares.engine.roles import require_host_or_admin
from campuscares.models import OpportunityRead, OpportunityUpdate, Viewer
from campuscares.repository import OpportunityRepository

logger = logging.getLogger(__name__)


class OpportunityEditor:
    def __init__(self, repository: OpportunityRepository):
        self.repository = repository

    def update_details(
        self, actor: Viewer, opportunity_id: int, changes: OpportunityUpdate
    ) -> OpportunityRead | None:
        """
        Apply a partial edit. Fields left unset are not touched.

        The start is a single instant on some backends, so a change to
        either ``date`` or ``time`` is sent with both.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "edit this opportunity")

        fields: dict[str, Any] = changes.model_dump(exclude_unset=True)
        if not fields:
            return opportunity
        if "name" in fields and not (fields["name"] or "").strip():
            raise ValidationError("Name cannot be empty")
        if "duration" in fields and (fields["duration"] is None or fields["duration"] <= 0):
            raise ValidationError("Duration must be a positive number of minutes")
        if "date" in fields or "time" in fields:
            fields["date"] = fields.get("date") or opportunity.date
            fields["time"] = fields.get("time") or opportunity.time
        if fields.get("causes") is not None:
            fields["causes"] = unique_causes(fields["causes"])
        for name in ("causes", "visibility", "description", "address"):
            if name in fields and fields[name] is None:
                raise ValidationError(f"{name} cannot be null")

        def project(record: OpportunityRead) -> OpportunityRead:
            return record.model_copy(update=fields)

        updated = self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.update_opportunity(opportunity_id, fields),
        )
        logger.info(
            f"User {actor.id} updated {', '.join(sorted(fields))} on opportunity {opportunity_id}"
        )
        return updated

    def set_slot_limit(
        self, actor: Viewer, opportunity_id: int, total_slots: int
    ) -> OpportunityRead | None:
        """
        Change the capacity.

        Raises:
            ValidationError: Below 1 or below the current participant count.
                The store repeats the participant check under lock.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "change the slot limit")

        if total_slots < 1:
            raise ValidationError("Slot limit must be at least 1")
        count = participant_count(opportunity)
        if total_slots < count:
            raise ValidationError(
                f"Cannot set slot limit lower than current number of participants ({count})",
                participant_count=count,
            )
        if total_slots == opportunity.total_slots:
            return opportunity

        def project(record: OpportunityRead) -> OpportunityRead:
            record.total_slots = total_slots
            return record

        return self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.update_opportunity(
                opportunity_id, {"total_slots": total_slots}
            ),
        )

    def add_comment(
        self, actor: Viewer, opportunity_id: int, text: str
    ) -> OpportunityRead | None:
        """Append an announcement. Existing comments are never rewritten."""
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "post announcements")

        text = text.strip()
        if not text:
            raise ValidationError("Comment cannot be empty")

        def project(record: OpportunityRead) -> OpportunityRead:
            record.comments = [*record.comments, text]
            return record

        return self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.add_comment(opportunity_id, text),
        )
