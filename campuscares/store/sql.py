"""SQLModel-backed opportunity store.

Every mutation runs as one transaction that starts by taking the write lock
on the opportunity row: ``SELECT ... FOR UPDATE`` on databases that support
it, plus a version bump that forces SQLite to acquire its writer lock before
anything is counted. Two signups racing for the last slot therefore
serialize, and the second one sees the first one's registration.
"""
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from campuscares.core.errors import (
    AlreadyRegistered,
    CapacityExceeded,
    NotApproved,
    NotFound,
    NotRegistered,
    PermissionDenied,
    RemoteUnavailable,
    ValidationError,
)
from campuscares.models import (
    Opportunity,
    OpportunityRead,
    Registration,
    RegistrationSummary,
)
from campuscares.store.base import ImageUpload

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name",
    "description",
    "nonprofit",
    "date",
    "time",
    "duration",
    "address",
    "causes",
    "visibility",
    "redirect_url",
    "total_slots",
    "approved",
    "attendance_marked",
}


def to_read(opportunity: Opportunity) -> OpportunityRead:
    """Map a table row and its registrations to the canonical record."""
    registrations = sorted(opportunity.registrations, key=lambda r: r.registered_at)
    return OpportunityRead.model_validate(
        {
            **opportunity.model_dump(),
            "registrations": [
                RegistrationSummary(
                    user_id=r.user_id, registered=r.registered, attended=r.attended
                )
                for r in registrations
            ],
        }
    )


class SqlOpportunityStore:
    """Opportunity store over a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    # Reads

    def list_opportunities(self) -> list[OpportunityRead]:
        statement = select(Opportunity).order_by(
            Opportunity.date, Opportunity.time, Opportunity.id
        )
        return self._read_all(statement)

    def list_unapproved_opportunities(self) -> list[OpportunityRead]:
        statement = (
            select(Opportunity)
            .where(Opportunity.approved == False)  # noqa: E712
            .order_by(Opportunity.date, Opportunity.time, Opportunity.id)
        )
        return self._read_all(statement)

    def get_opportunity(self, opportunity_id: int) -> OpportunityRead:
        try:
            opportunity = self.session.get(
                Opportunity, opportunity_id, populate_existing=True
            )
            if opportunity is None:
                raise NotFound(f"Opportunity {opportunity_id} not found")
            return to_read(opportunity)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load opportunity {opportunity_id}: {e}")
            raise RemoteUnavailable("Opportunity store unavailable") from e

    def _read_all(self, statement) -> list[OpportunityRead]:
        try:
            rows = self.session.exec(
                statement.execution_options(populate_existing=True)
            ).all()
            return [to_read(opportunity) for opportunity in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list opportunities: {e}")
            raise RemoteUnavailable("Opportunity store unavailable") from e

    # Writes

    def create_opportunity(
        self, fields: dict[str, Any], image: ImageUpload | None = None
    ) -> OpportunityRead:
        if image is not None:
            logger.debug(f"Ignoring image upload {image[0]!r}: images are stored elsewhere")
        opportunity = Opportunity(**fields)
        try:
            self.session.add(opportunity)
            self.session.commit()
            self.session.refresh(opportunity)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to create opportunity: {e}")
            raise RemoteUnavailable("Opportunity store unavailable") from e
        logger.info(f"Created opportunity {opportunity.id} (approved={opportunity.approved})")
        return to_read(opportunity)

    def update_opportunity(
        self, opportunity_id: int, fields: dict[str, Any]
    ) -> OpportunityRead:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        with self._locked(opportunity_id) as opportunity:
            if "total_slots" in fields:
                count = self._participant_count(opportunity)
                if fields["total_slots"] < max(count, 1):
                    raise ValidationError(
                        f"Cannot set slot limit lower than current number of participants ({count})",
                        participant_count=count,
                    )
            for name, value in fields.items():
                setattr(opportunity, name, value)
        return self.get_opportunity(opportunity_id)

    def add_comment(self, opportunity_id: int, text: str) -> OpportunityRead:
        with self._locked(opportunity_id) as opportunity:
            # Reassign so the JSON column is flagged dirty
            opportunity.comments = [*opportunity.comments, text]
        return self.get_opportunity(opportunity_id)

    def delete_opportunity(self, opportunity_id: int, require_pending: bool = False) -> None:
        with self._locked(opportunity_id) as opportunity:
            if require_pending and opportunity.approved:
                raise PermissionDenied(
                    "Approved opportunities can only be deleted by an administrator"
                )
            registrations = self.session.exec(
                select(Registration).where(Registration.opportunity_id == opportunity_id)
            ).all()
            for registration in registrations:
                self.session.delete(registration)
            self.session.delete(opportunity)
        logger.info(
            f"Deleted opportunity {opportunity_id} and {len(registrations)} registrations"
        )

    def register(self, user_id: int, opportunity_id: int, allow_pending: bool = False) -> None:
        with self._locked(opportunity_id) as opportunity:
            if not opportunity.approved and not allow_pending:
                raise NotApproved("This opportunity has not been approved yet")
            if opportunity.host_user_id == user_id:
                raise AlreadyRegistered("The host is already a participant")

            registration = self._registration(user_id, opportunity_id)
            if registration is not None and registration.registered:
                raise AlreadyRegistered("Already registered for this opportunity")

            count = self._participant_count(opportunity)
            if count >= opportunity.total_slots:
                raise CapacityExceeded(
                    "This opportunity is full",
                    total_slots=opportunity.total_slots,
                    participant_count=count,
                )

            if registration is None:
                registration = Registration(user_id=user_id, opportunity_id=opportunity_id)
            else:
                registration.registered = True
                registration.attended = False
                registration.registered_at = datetime.now(UTC)
            self.session.add(registration)
        logger.info(f"User {user_id} registered for opportunity {opportunity_id}")

    def unregister(self, user_id: int, opportunity_id: int) -> None:
        with self._locked(opportunity_id) as opportunity:
            if opportunity.host_user_id == user_id:
                raise PermissionDenied("The host cannot unregister from their own opportunity")
            registration = self._registration(user_id, opportunity_id)
            if registration is None or not registration.registered:
                raise NotRegistered("Not registered for this opportunity")
            registration.registered = False
            self.session.add(registration)
        logger.info(f"User {user_id} unregistered from opportunity {opportunity_id}")

    def mark_attendance(self, user_id: int, opportunity_id: int) -> None:
        with self._locked(opportunity_id) as opportunity:
            if opportunity.host_user_id == user_id:
                opportunity.host_attended = True
            else:
                registration = self._registration(user_id, opportunity_id)
                if registration is None or not registration.registered:
                    raise NotRegistered(
                        f"User {user_id} is not a participant of opportunity {opportunity_id}"
                    )
                registration.attended = True
                self.session.add(registration)
            opportunity.attendance_marked = True

    # Helpers

    @contextmanager
    def _locked(self, opportunity_id: int):
        """Lock the opportunity row for the duration of one transaction."""
        try:
            statement = (
                select(Opportunity)
                .where(Opportunity.id == opportunity_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            opportunity = self.session.exec(statement).first()
            if opportunity is None:
                raise NotFound(f"Opportunity {opportunity_id} not found")
            opportunity.version += 1
            self.session.add(opportunity)
            self.session.flush()

            yield opportunity

            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Transaction on opportunity {opportunity_id} failed: {e}")
            raise RemoteUnavailable("Opportunity store unavailable") from e
        except Exception:
            self.session.rollback()
            raise

    def _registration(self, user_id: int, opportunity_id: int) -> Registration | None:
        return self.session.get(
            Registration,
            {"user_id": user_id, "opportunity_id": opportunity_id},
            populate_existing=True,
        )

    def _participant_count(self, opportunity: Opportunity) -> int:
        """User host plus active registrations, counted inside the locked transaction."""
        statement = (
            select(func.count())
            .select_from(Registration)
            .where(Registration.opportunity_id == opportunity.id)
            .where(Registration.registered == True)  # noqa: E712
        )
        if opportunity.host_user_id is not None:
            statement = statement.where(Registration.user_id != opportunity.host_user_id)
        host = 1 if opportunity.host_user_id is not None else 0
        return host + self.session.exec(statement).one()
