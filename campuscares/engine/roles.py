"""Who may act as host of an opportunity, and who may look at one."""

from campuscares.core.errors import PermissionDenied
from campuscares.engine.ledger import is_participant
from campuscares.engine.visibility import is_visible
from campuscares.models import OpportunityRead, Viewer


def acts_as_host(opportunity: OpportunityRead, viewer: Viewer) -> bool:
    """
    True for the hosting user, or for the creator of an organization-hosted
    opportunity.
    """
    if opportunity.host_user_id is not None:
        return opportunity.host_user_id == viewer.id
    return opportunity.created_by == viewer.id


def require_host_or_admin(opportunity: OpportunityRead, viewer: Viewer, action: str) -> None:
    if not (viewer.admin or acts_as_host(opportunity, viewer)):
        raise PermissionDenied(f"Only the host or an administrator can {action}")


def may_view(opportunity: OpportunityRead, viewer: Viewer) -> bool:
    """
    Whether a single opportunity may be shown to the viewer.

    Wider than the listing rule: hosts see their pending and past
    opportunities, and participants keep seeing the ones they joined.
    """
    return (
        viewer.admin
        or is_visible(opportunity, viewer)
        or acts_as_host(opportunity, viewer)
        or is_participant(opportunity, viewer.id)
    )
