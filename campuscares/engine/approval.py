"""Pending/approved lifecycle of an opportunity.

    create --(privileged)--> APPROVED
    create ----------------> PENDING --approve(admin)--> APPROVED
    APPROVED --unapprove(admin or host)--> PENDING

Deleting is allowed from either state for administrators, and for the
creator while the opportunity is still pending.
"""
import logging
from enum import StrEnum

from campuscares.core.errors import PermissionDenied, ValidationError
from campuscares.engine.roles import require_host_or_admin
from campuscares.models import OpportunityCreate, OpportunityRead, Viewer
from campuscares.repository import OpportunityRepository
from campuscares.store.base import ImageUpload

logger = logging.getLogger(__name__)


class ApprovalState(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"


def state_of(opportunity: OpportunityRead) -> ApprovalState:
    return ApprovalState.APPROVED if opportunity.approved else ApprovalState.PENDING


def unique_causes(causes: list[str]) -> list[str]:
    """Strip, drop empties and de-duplicate, keeping first occurrence order."""
    return list(dict.fromkeys(cause.strip() for cause in causes if cause.strip()))


class ApprovalWorkflow:
    """Creation, moderation and deletion of opportunities."""

    def __init__(self, repository: OpportunityRepository):
        self.repository = repository

    def create(
        self, actor: Viewer, draft: OpportunityCreate, image: ImageUpload | None = None
    ) -> OpportunityRead:
        """
        Create an opportunity hosted by the actor or one of their organizations.

        Privileged actors create approved opportunities; everyone else creates
        pending ones that wait for an administrator.

        Raises:
            ValidationError: Non-positive slot count or duration.
            PermissionDenied: Host organization the actor does not belong to.
        """
        if draft.total_slots < 1:
            raise ValidationError("An opportunity needs at least one slot")
        if draft.duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        if (
            draft.host_org_id is not None
            and not actor.admin
            and draft.host_org_id not in actor.organizations
        ):
            raise PermissionDenied(
                f"Cannot host on behalf of organization {draft.host_org_id}"
            )

        fields = draft.model_dump()
        fields.update(
            host_user_id=actor.id if draft.host_org_id is None else None,
            created_by=actor.id,
            approved=actor.privileged,
            causes=unique_causes(draft.causes),
            visibility=list(dict.fromkeys(draft.visibility)),
        )
        opportunity = self.repository.store.create_opportunity(fields, image)
        self.repository.put(opportunity)
        logger.info(
            f"User {actor.id} created opportunity {opportunity.id} "
            f"({state_of(opportunity)})"
        )
        return opportunity

    def approve(self, actor: Viewer, opportunity_id: int) -> OpportunityRead | None:
        if not actor.admin:
            raise PermissionDenied("Only administrators can approve opportunities")
        return self._transition(opportunity_id, ApprovalState.APPROVED)

    def unapprove(self, actor: Viewer, opportunity_id: int) -> OpportunityRead | None:
        opportunity = self.repository.get(opportunity_id, refresh=True)
        require_host_or_admin(opportunity, actor, "unapprove this opportunity")
        return self._transition(opportunity_id, ApprovalState.PENDING)

    def delete(self, actor: Viewer, opportunity_id: int) -> None:
        """
        Delete an opportunity and every registration for it.

        Creators may only delete while pending. The store re-checks that
        condition under lock, so an approval that lands first wins.
        """
        opportunity = self.repository.get(opportunity_id, refresh=True)
        if not actor.admin:
            if opportunity.created_by != actor.id:
                raise PermissionDenied("Only the creator or an administrator can delete")
            if opportunity.approved:
                raise PermissionDenied(
                    "Approved opportunities can only be deleted by an administrator"
                )

        self.repository.mutate(
            opportunity_id,
            lambda record: None,
            lambda: self.repository.store.delete_opportunity(
                opportunity_id, require_pending=not actor.admin
            ),
        )
        logger.info(f"User {actor.id} deleted opportunity {opportunity_id}")

    def _transition(
        self, opportunity_id: int, target: ApprovalState
    ) -> OpportunityRead | None:
        opportunity = self.repository.get(opportunity_id, refresh=True)
        if state_of(opportunity) == target:
            return opportunity

        approved = target == ApprovalState.APPROVED

        def project(record: OpportunityRead) -> OpportunityRead:
            record.approved = approved
            return record

        updated = self.repository.mutate(
            opportunity_id,
            project,
            lambda: self.repository.store.update_opportunity(
                opportunity_id, {"approved": approved}
            ),
        )
        logger.info(f"Opportunity {opportunity_id} is now {target}")
        return updated
