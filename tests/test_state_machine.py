"""Tests for access request state machine validation."""
import pytest
from academy_core.models import AccessRequestStatus
from academy_core.state_machine import (
    is_transition_valid,
    validate_transition,
    StateTransitionError,
    get_allowed_transitions,
    is_terminal,
)


class TestStateTransitions:
    """Test state machine transition validation."""

    def test_pending_can_be_decided(self):
        """Test that pending requests can be approved or rejected."""
        assert is_transition_valid(AccessRequestStatus.PENDING, AccessRequestStatus.APPROVED)
        validate_transition(AccessRequestStatus.PENDING, AccessRequestStatus.APPROVED)  # Should not raise

        assert is_transition_valid(AccessRequestStatus.PENDING, AccessRequestStatus.REJECTED)
        validate_transition(AccessRequestStatus.PENDING, AccessRequestStatus.REJECTED)

    def test_decided_requests_are_terminal(self):
        """Test that approved and rejected requests never transition again."""
        for terminal in (AccessRequestStatus.APPROVED, AccessRequestStatus.REJECTED):
            assert is_terminal(terminal)
            for status in AccessRequestStatus:
                assert not is_transition_valid(terminal, status)

                with pytest.raises(StateTransitionError) as exc_info:
                    validate_transition(terminal, status)

                assert "cannot be reviewed again" in str(exc_info.value).lower()

    def test_repeat_decision_is_blocked(self):
        """Test that re-approving an approved request is not a silent no-op."""
        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(AccessRequestStatus.APPROVED, AccessRequestStatus.APPROVED)

        assert exc_info.value.current_status == AccessRequestStatus.APPROVED
        assert exc_info.value.requested_status == AccessRequestStatus.APPROVED

    def test_pending_to_pending_is_blocked(self):
        """Test that a review must pick a decision."""
        assert not is_transition_valid(AccessRequestStatus.PENDING, AccessRequestStatus.PENDING)

        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(AccessRequestStatus.PENDING, AccessRequestStatus.PENDING)

        assert "approved, rejected" in str(exc_info.value)

    def test_get_allowed_transitions(self):
        """Test getting allowed transitions from each state."""
        assert set(get_allowed_transitions(AccessRequestStatus.PENDING)) == {
            AccessRequestStatus.APPROVED,
            AccessRequestStatus.REJECTED,
        }
        assert get_allowed_transitions(AccessRequestStatus.APPROVED) == []
        assert get_allowed_transitions(AccessRequestStatus.REJECTED) == []
        assert not is_terminal(AccessRequestStatus.PENDING)

    def test_state_transition_error_attributes(self):
        """Test that StateTransitionError contains all required attributes."""
        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(AccessRequestStatus.REJECTED, AccessRequestStatus.APPROVED)

        error = exc_info.value
        assert error.current_status == AccessRequestStatus.REJECTED
        assert error.requested_status == AccessRequestStatus.APPROVED
        assert isinstance(error.allowed_transitions, list)
        assert error.allowed_transitions == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
