"""Tests for signing up, unregistering and participant derivation."""

from datetime import timedelta

import pytest
from sqlmodel import Session, select

from campuscares.core.errors import (
    AlreadyRegistered,
    CapacityExceeded,
    NotApproved,
    NotFound,
    NotRegistered,
    PermissionDenied,
    WindowClosed,
)
from campuscares.engine.ledger import RegistrationLedger, participant_count, participants
from campuscares.engine.time_policy import event_start
from campuscares.models import Registration, RegistrationSummary, Viewer
from campuscares.repository import OpportunityRepository

from conftest import ALICE_ID, BOB_ID, HOST_ID, ORG_X, ORG_Y, starting_in


@pytest.fixture(name="ledger")
def ledger_fixture(repository: OpportunityRepository) -> RegistrationLedger:
    return RegistrationLedger(repository)


class TestSignUp:
    """Tests for RegistrationLedger.sign_up."""

    def test_last_slot_goes_to_first_caller(self, ledger, make_opportunity, alice, bob):
        """Test that a one-slot opportunity accepts one signup and rejects the next."""
        opportunity = make_opportunity(
            host_user_id=None, host_org_id=ORG_X, total_slots=1
        )

        updated = ledger.sign_up(alice, opportunity.id)
        assert participant_count(updated) == 1

        with pytest.raises(CapacityExceeded) as exc_info:
            ledger.sign_up(bob, opportunity.id)
        assert exc_info.value.context == {"total_slots": 1, "participant_count": 1}

    def test_user_host_holds_a_slot(self, ledger, make_opportunity, alice, bob):
        """Test that the hosting user counts against capacity."""
        opportunity = make_opportunity(total_slots=2)

        updated = ledger.sign_up(alice, opportunity.id)
        assert participant_count(updated) == 2

        with pytest.raises(CapacityExceeded):
            ledger.sign_up(bob, opportunity.id)

    def test_repeat_signup_has_no_side_effects(
        self, ledger, make_opportunity, alice, session: Session
    ):
        """Test that signing up twice raises and leaves one registration."""
        opportunity = make_opportunity()
        ledger.sign_up(alice, opportunity.id)

        with pytest.raises(AlreadyRegistered):
            ledger.sign_up(alice, opportunity.id)

        rows = session.exec(
            select(Registration).where(Registration.opportunity_id == opportunity.id)
        ).all()
        assert len(rows) == 1

    def test_host_cannot_sign_up(self, ledger, sample_opportunity, host):
        """Test that the host is already a participant."""
        with pytest.raises(AlreadyRegistered):
            ledger.sign_up(host, sample_opportunity.id)

    def test_pending_rejects_ordinary_viewer(self, ledger, make_opportunity, alice):
        """Test that pending opportunities refuse signups."""
        opportunity = make_opportunity(approved=False)
        with pytest.raises(NotApproved):
            ledger.sign_up(alice, opportunity.id)

    def test_pending_accepts_admin(self, ledger, make_opportunity, admin):
        """Test that privileged viewers may join pending opportunities."""
        opportunity = make_opportunity(approved=False)
        updated = ledger.sign_up(admin, opportunity.id)
        assert participant_count(updated) == 2

    def test_redirect_url_does_not_gate_signup(self, ledger, make_opportunity, alice):
        """Test that an external registration link is advisory."""
        opportunity = make_opportunity(redirect_url="https://example.org/register")
        updated = ledger.sign_up(alice, opportunity.id)
        assert ALICE_ID in [p.id for p in participants(updated)]

    def test_missing_opportunity(self, ledger, alice):
        """Test signup for an unknown id."""
        with pytest.raises(NotFound):
            ledger.sign_up(alice, 12345)

    def test_outside_visibility_set(self, ledger, repository, make_opportunity):
        """Test that a viewer who cannot see an opportunity cannot claim a slot."""
        opportunity = make_opportunity(visibility=[ORG_X])
        outsider = Viewer(id=ALICE_ID, organizations=frozenset({ORG_Y}))

        with pytest.raises(NotFound):
            ledger.sign_up(outsider, opportunity.id)
        assert participant_count(repository.get(opportunity.id)) == 1

    def test_member_of_visibility_set(self, ledger, make_opportunity):
        """Test that organization members can sign up for private opportunities."""
        opportunity = make_opportunity(visibility=[ORG_X])
        member = Viewer(id=ALICE_ID, organizations=frozenset({ORG_X}))
        assert participant_count(ledger.sign_up(member, opportunity.id)) == 2

    @pytest.mark.parametrize(
        "delta", [timedelta(days=-3), timedelta(minutes=-10)], ids=["past", "started"]
    )
    def test_started_opportunity(self, ledger, make_opportunity, alice, admin, delta):
        """Test that nobody can sign up once the event has started."""
        opportunity = make_opportunity(**starting_in(delta))

        for viewer in (alice, admin):
            with pytest.raises(NotFound):
                ledger.sign_up(viewer, opportunity.id)

    def test_store_rejection_restores_projection(
        self, repository, make_opportunity, session: Session
    ):
        """Test that a capacity race lost at the store leaves the cache confirmed."""
        opportunity = make_opportunity(total_slots=2)
        repository.get(opportunity.id)

        # Another request takes the last slot after our read
        session.add(Registration(user_id=BOB_ID, opportunity_id=opportunity.id))
        session.commit()

        with pytest.raises(CapacityExceeded):
            repository.mutate(
                opportunity.id,
                lambda record: record.model_copy(
                    update={
                        "registrations": [
                            *record.registrations,
                            RegistrationSummary(user_id=ALICE_ID),
                        ]
                    }
                ),
                lambda: repository.store.register(ALICE_ID, opportunity.id),
            )
        cached = repository.peek(opportunity.id)
        assert participant_count(cached) == 2
        assert ALICE_ID not in [p.id for p in participants(cached)]


class TestUnSignUp:
    """Tests for RegistrationLedger.un_sign_up."""

    def test_round_trip_restores_count(self, ledger, repository, sample_opportunity, alice):
        """Test that signup followed by unregister returns to the prior count."""
        before = participant_count(repository.get(sample_opportunity.id))

        ledger.sign_up(alice, sample_opportunity.id)
        updated = ledger.un_sign_up(alice, sample_opportunity.id)

        assert participant_count(updated) == before

    def test_reactivating_after_unregister(self, ledger, sample_opportunity, alice):
        """Test that a user can sign up again after leaving."""
        ledger.sign_up(alice, sample_opportunity.id)
        ledger.un_sign_up(alice, sample_opportunity.id)
        updated = ledger.sign_up(alice, sample_opportunity.id)
        assert participant_count(updated) == 2

    def test_window_closed_five_hours_before(self, ledger, repository, sample_opportunity, alice):
        """Test that unregistering five hours out fails with the remaining hours."""
        ledger.sign_up(alice, sample_opportunity.id)
        start = event_start(repository.get(sample_opportunity.id))

        with pytest.raises(WindowClosed) as exc_info:
            ledger.un_sign_up(alice, sample_opportunity.id, now=start - timedelta(hours=5))

        assert exc_info.value.hours_remaining == pytest.approx(5)
        assert exc_info.value.to_dict()["hours_remaining"] == pytest.approx(5)
        assert participant_count(repository.get(sample_opportunity.id)) == 2

    @pytest.mark.parametrize("signed_up", [True, False])
    def test_window_closed_regardless_of_state(
        self, ledger, repository, sample_opportunity, alice, signed_up
    ):
        """Test that the window check applies whether or not the user is registered."""
        if signed_up:
            ledger.sign_up(alice, sample_opportunity.id)
        start = event_start(repository.get(sample_opportunity.id))

        with pytest.raises(WindowClosed):
            ledger.un_sign_up(alice, sample_opportunity.id, now=start - timedelta(hours=1))

    def test_host_cannot_unregister(self, ledger, sample_opportunity, host):
        """Test that hosts never vacate their own opportunity."""
        with pytest.raises(PermissionDenied):
            ledger.un_sign_up(host, sample_opportunity.id)

    def test_not_registered(self, ledger, sample_opportunity, bob):
        """Test unregistering without a registration."""
        with pytest.raises(NotRegistered):
            ledger.un_sign_up(bob, sample_opportunity.id)


class TestParticipants:
    """Tests for the derived participant set."""

    def test_host_present_without_registrations(self, repository, sample_opportunity):
        """Test that the host is a participant even with zero registrations."""
        opportunity = repository.get(sample_opportunity.id)
        members = participants(opportunity)
        assert [(p.id, p.is_host) for p in members] == [(HOST_ID, True)]
        assert participant_count(opportunity) == 1

    def test_host_registration_row_is_not_double_counted(self, repository, make_opportunity):
        """Test that a registration row for the host does not add a second entry."""
        opportunity = make_opportunity(registrants=(HOST_ID, ALICE_ID))
        members = participants(repository.get(opportunity.id))
        assert [p.id for p in members] == [HOST_ID, ALICE_ID]

    def test_organization_host_is_listed(self, repository, make_opportunity):
        """Test that an organization host appears but holds no slot."""
        opportunity = make_opportunity(host_user_id=None, host_org_id=ORG_X)
        record = repository.get(opportunity.id)
        assert participants(record)[0].kind == "organization"
        assert participant_count(record) == 0

    def test_availability(self, ledger, make_opportunity):
        """Test the advisory capacity probe."""
        opportunity = make_opportunity(total_slots=3, registrants=(ALICE_ID, BOB_ID))
        availability = ledger.availability(opportunity.id)
        assert availability.participant_count == 3
        assert availability.remaining_slots == 0
        assert availability.is_full is True

    def test_count_never_exceeds_slots(self, ledger, make_opportunity):
        """Test that many signups never push the count past capacity."""
        opportunity = make_opportunity(total_slots=4)
        accepted = 0
        for user_id in range(100, 110):
            try:
                updated = ledger.sign_up(Viewer(id=user_id), opportunity.id)
            except CapacityExceeded:
                continue
            accepted += 1
            assert participant_count(updated) <= 4
        assert accepted == 3
