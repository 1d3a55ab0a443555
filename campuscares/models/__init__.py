from campuscares.models.opportunity import (
    Opportunity,
    OpportunityCreate,
    OpportunityDetail,
    OpportunityRead,
    OpportunityUpdate,
    RegistrationSummary,
)
from campuscares.models.registration import Registration
from campuscares.models.viewer import Viewer

__all__ = [
    "Opportunity",
    "OpportunityCreate",
    "OpportunityDetail",
    "OpportunityRead",
    "OpportunityUpdate",
    "Registration",
    "RegistrationSummary",
    "Viewer",
]
