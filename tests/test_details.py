"""Tests for detail edits, slot limits and announcements."""

from datetime import time

import pytest

from campuscares.core.errors import PermissionDenied, ValidationError
from campuscares.engine.details import OpportunityEditor
from campuscares.engine.time_policy import display_end_time
from campuscares.models import OpportunityUpdate
from campuscares.repository import OpportunityRepository

from conftest import ALICE_ID, BOB_ID


@pytest.fixture(name="editor")
def editor_fixture(repository: OpportunityRepository) -> OpportunityEditor:
    return OpportunityEditor(repository)


class TestUpdateDetails:
    """Tests for OpportunityEditor.update_details."""

    def test_host_edits_fields(self, editor, sample_opportunity, host):
        """Test a partial edit leaves other fields alone."""
        updated = editor.update_details(
            host,
            sample_opportunity.id,
            OpportunityUpdate(name="River Cleanup", causes=["environment", "environment", "water"]),
        )
        assert updated.name == "River Cleanup"
        assert updated.causes == ["environment", "water"]
        assert updated.address == "Riverside Park"

    def test_time_change_keeps_date(self, editor, repository, sample_opportunity, host):
        """Test that changing only the time keeps the stored date."""
        original_date = repository.get(sample_opportunity.id).date
        updated = editor.update_details(
            host, sample_opportunity.id, OpportunityUpdate(time=time(13, 0), duration=45)
        )
        assert updated.date == original_date
        assert display_end_time(updated) == "1:45 PM"

    def test_non_positive_duration(self, editor, sample_opportunity, host):
        """Test that durations must be positive."""
        with pytest.raises(ValidationError):
            editor.update_details(host, sample_opportunity.id, OpportunityUpdate(duration=0))

    def test_admin_may_edit(self, editor, sample_opportunity, admin):
        """Test that administrators can edit any opportunity."""
        updated = editor.update_details(
            admin, sample_opportunity.id, OpportunityUpdate(description="Bring gloves")
        )
        assert updated.description == "Bring gloves"

    def test_others_may_not_edit(self, editor, sample_opportunity, alice):
        """Test that unrelated users cannot edit."""
        with pytest.raises(PermissionDenied):
            editor.update_details(alice, sample_opportunity.id, OpportunityUpdate(name="Mine"))


class TestSlotLimit:
    """Tests for OpportunityEditor.set_slot_limit."""

    def test_raise_limit(self, editor, sample_opportunity, host):
        """Test increasing capacity."""
        updated = editor.set_slot_limit(host, sample_opportunity.id, 12)
        assert updated.total_slots == 12

    def test_below_participants_rejected(self, editor, repository, make_opportunity, host):
        """Test that capacity cannot drop below the current participant count."""
        opportunity = make_opportunity(registrants=(ALICE_ID, BOB_ID))

        with pytest.raises(ValidationError) as exc_info:
            editor.set_slot_limit(host, opportunity.id, 2)

        assert exc_info.value.context["participant_count"] == 3
        assert repository.get(opportunity.id).total_slots == 5

    def test_equal_to_participants_allowed(self, editor, make_opportunity, host):
        """Test shrinking capacity to exactly the participant count."""
        opportunity = make_opportunity(registrants=(ALICE_ID, BOB_ID))
        updated = editor.set_slot_limit(host, opportunity.id, 3)
        assert updated.total_slots == 3

    def test_below_one_rejected(self, editor, sample_opportunity, admin):
        """Test that capacity must be at least one."""
        with pytest.raises(ValidationError):
            editor.set_slot_limit(admin, sample_opportunity.id, 0)

    def test_store_rechecks_participants(self, repository, make_opportunity):
        """Test that the store refuses a limit below the live participant count."""
        opportunity = make_opportunity(registrants=(ALICE_ID,))
        with pytest.raises(ValidationError):
            repository.store.update_opportunity(opportunity.id, {"total_slots": 1})


class TestComments:
    """Tests for OpportunityEditor.add_comment."""

    def test_comments_append_in_order(self, editor, sample_opportunity, host):
        """Test that announcements are appended, never rewritten."""
        editor.add_comment(host, sample_opportunity.id, "Meet at the north gate")
        updated = editor.add_comment(host, sample_opportunity.id, "  Bring water  ")
        assert updated.comments == ["Meet at the north gate", "Bring water"]

    def test_empty_comment_rejected(self, editor, sample_opportunity, host):
        """Test that blank announcements are refused."""
        with pytest.raises(ValidationError):
            editor.add_comment(host, sample_opportunity.id, "   ")

    def test_participant_may_not_comment(self, editor, sample_opportunity, alice):
        """Test that only hosts and administrators post announcements."""
        with pytest.raises(PermissionDenied):
            editor.add_comment(alice, sample_opportunity.id, "Hello")
