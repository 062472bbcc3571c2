"""State machine validation for level access request status transitions.

Enforces the review gate for access requests:
- A request is created pending and reviewed exactly once
- Approved and rejected are terminal; a decided request never re-transitions
- Repeating a decision is blocked too, so a double click cannot re-grant
- Provides clear error messages for blocked transitions
"""
import logging

from .models import AccessRequestStatus

logger = logging.getLogger("academy-core.state_machine")


class StateTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: AccessRequestStatus,
        requested_status: AccessRequestStatus,
        allowed_transitions: list[AccessRequestStatus]
    ):
        super().__init__(message)
        self.message = message
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# State machine transition matrix
# Maps current status → list of allowed next statuses
TRANSITION_MATRIX: dict[AccessRequestStatus, list[AccessRequestStatus]] = {
    AccessRequestStatus.PENDING: [
        AccessRequestStatus.APPROVED,   # Reviewer grants access
        AccessRequestStatus.REJECTED,   # Reviewer declines
    ],
    AccessRequestStatus.APPROVED: [
        # Terminal: the grant has been issued
    ],
    AccessRequestStatus.REJECTED: [
        # Terminal: learner may submit a fresh request instead
    ],
}

# Statuses a reviewer may pick as a decision
DECISION_STATUSES = (AccessRequestStatus.APPROVED, AccessRequestStatus.REJECTED)


def is_transition_valid(
    current_status: AccessRequestStatus,
    new_status: AccessRequestStatus
) -> bool:
    """
    Check if a status transition is valid.

    Args:
        current_status: Current request status
        new_status: Requested new status

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = TRANSITION_MATRIX.get(current_status, [])
    return new_status in allowed_transitions


def validate_transition(
    current_status: AccessRequestStatus,
    new_status: AccessRequestStatus
) -> None:
    """
    Validate a status transition and raise exception if invalid.

    Args:
        current_status: Current request status
        new_status: Requested new status

    Raises:
        StateTransitionError: If the transition is not allowed
    """
    if not is_transition_valid(current_status, new_status):
        allowed_transitions = TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions]

        if allowed_names:
            error_msg = (
                f"Invalid status transition: {current_status.value} → {new_status.value}. "
                f"From {current_status.value}, you can only transition to: {', '.join(allowed_names)}."
            )
        else:
            error_msg = (
                f"Invalid status transition: {current_status.value} → {new_status.value}. "
                f"Request has already been {current_status.value} and cannot be reviewed again."
            )

        if new_status == AccessRequestStatus.PENDING:
            error_msg += " Requests cannot be moved back to pending. Submit a new request instead."

        logger.warning(f"Blocked transition: {error_msg}")
        raise StateTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid transition: {current_status.value} → {new_status.value}")


def get_allowed_transitions(current_status: AccessRequestStatus) -> list[AccessRequestStatus]:
    """
    Get list of allowed transitions from current status.

    Args:
        current_status: Current request status

    Returns:
        List of allowed next statuses
    """
    return list(TRANSITION_MATRIX.get(current_status, []))


def is_terminal(status: AccessRequestStatus) -> bool:
    """True when no transition leaves the given status."""
    return not TRANSITION_MATRIX.get(status)
