"""Registration model for tracking who signed up for an opportunity."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from campuscares.models.opportunity import Opportunity


class Registration(SQLModel, table=True):
    """A user's recorded intent to participate in an opportunity.

    One row per (user, opportunity). Unregistering flips ``registered``
    rather than deleting the row, so a later signup reactivates it.

    Attributes:
        user_id: External user id.
        opportunity_id: Foreign key to the Opportunity.
        registered: True while the user is actively signed up.
        attended: Set by the host or an administrator after the event.
        registered_at: When the most recent signup happened.
        opportunity: Reference to the parent Opportunity.
    """
    user_id: int = Field(primary_key=True)
    opportunity_id: int = Field(foreign_key="opportunity.id", primary_key=True)
    registered: bool = Field(default=True)
    attended: bool = Field(default=False)
    registered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    opportunity: Optional["Opportunity"] = Relationship(back_populates="registrations")
