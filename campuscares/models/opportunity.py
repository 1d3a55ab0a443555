"""Opportunity models for volunteer events.

This module defines the persisted Opportunity table together with the
non-table schemas the engine and API exchange. ``OpportunityRead`` is the
canonical in-memory representation: every store, local or remote, maps its
records into it before any engine rule looks at them.
"""

import datetime as dt
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from campuscares.models.registration import Registration


class OpportunityBase(SQLModel):
    """Fields shared by the table and the read/create schemas.

    Attributes:
        name: Display title of the event.
        description: Free-form description.
        nonprofit: Optional name of the partner nonprofit.
        host_user_id: Hosting user. Exactly one of this and host_org_id is set.
        host_org_id: Hosting organization.
        created_by: User id of whoever created the opportunity.
        total_slots: Capacity, counting a hosting user but not a hosting organization.
        date: Civil start date in the configured event timezone.
        time: Civil start time in the configured event timezone.
        duration: Length of the event in minutes.
        address: Where volunteers meet.
        approved: False while the opportunity awaits moderation.
        redirect_url: External registration link. Advisory only.
        attendance_marked: Set once any attendance pass has run.
    """
    name: str
    description: str = ""
    nonprofit: str | None = None
    host_user_id: int | None = Field(default=None, index=True)
    host_org_id: int | None = Field(default=None, index=True)
    created_by: int | None = Field(default=None, index=True)
    total_slots: int
    date: dt.date
    time: dt.time
    duration: int = 60
    address: str = ""
    approved: bool = Field(default=False, index=True)
    redirect_url: str | None = None
    attendance_marked: bool = False


class Opportunity(OpportunityBase, table=True):
    """A persisted volunteer event.

    Attributes:
        id: Autoincrement primary key.
        causes: Category tags, de-duplicated, insertion ordered.
        visibility: Organization ids allowed to see the event. Empty means public.
        comments: Host announcements. Append-only.
        host_attended: Attendance of the hosting user. Unused for organization hosts.
        version: Bumped on every committed write. Also used to take the row lock.
        created_at: Creation timestamp.
        registrations: Every signup ever made, active or not.
    """
    id: int | None = Field(default=None, primary_key=True)
    causes: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    visibility: list[int] = Field(default_factory=list, sa_column=Column(JSON))
    comments: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    host_attended: bool = False
    version: int = Field(default=1)
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))

    registrations: list["Registration"] = Relationship(back_populates="opportunity")


class RegistrationSummary(SQLModel):
    """Nested participant summary carried on every opportunity record."""
    user_id: int
    registered: bool = True
    attended: bool = False


class OpportunityRead(OpportunityBase):
    """Canonical opportunity record handed to the engine and the API."""
    id: int
    causes: list[str] = []
    visibility: list[int] = []
    comments: list[str] = []
    host_attended: bool = False
    registrations: list[RegistrationSummary] = []


class OpportunityDetail(OpportunityRead):
    """Single-opportunity view with derived, display-ready values."""
    state: str
    participant_count: int
    remaining_slots: int
    end_time: str
    time_until: str
    can_unregister: bool


class OpportunityCreate(SQLModel):
    """Fields a creator supplies. Host defaults to the creator."""
    name: str
    description: str = ""
    nonprofit: str | None = None
    host_org_id: int | None = None
    total_slots: int
    date: dt.date
    time: dt.time
    duration: int = 60
    address: str = ""
    causes: list[str] = []
    visibility: list[int] = []
    redirect_url: str | None = None


class OpportunityUpdate(SQLModel):
    """Editable details. Unset fields are left alone."""
    name: str | None = None
    description: str | None = None
    nonprofit: str | None = None
    date: dt.date | None = None
    time: dt.time | None = None
    duration: int | None = None
    address: str | None = None
    causes: list[str] | None = None
    visibility: list[int] | None = None
    redirect_url: str | None = None
