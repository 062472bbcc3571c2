"""Level access request / review / grant workflow.

Request flow:
    learner submits -> no live grant, no pending request -> request stored
    pending -> every reviewer (teacher/admin) is notified

Review flow:
    reviewer decides -> request moves pending -> approved|rejected exactly
    once -> on approval a grant is upserted -> requester is notified

Every public method returns an ``AccessOutcome``; store failures, duplicate
submissions and stale reviews come back as error codes, never as exceptions.
Notifications are best-effort: a failing sink is logged and never undoes the
access-state write that triggered it.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

from . import models
from .access_store import (
    AccessRequestStore,
    AccessStoreError,
    AlreadyExistsError,
    InvalidTransitionError,
    RequestNotFoundError,
)
from .directory import AccessDirectory
from .notifications import NotificationSink
from .state_machine import DECISION_STATUSES

logger = logging.getLogger("academy-core.workflow")

APPROVED_REQUEST_REASON = "approved_request"
MANUAL_GRANT_REASON = "manual"


class AccessErrorCode(str, enum.Enum):
    """Typed failure outcomes of the access workflow."""

    ALREADY_GRANTED = "already_granted"
    DUPLICATE_PENDING = "duplicate_pending"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    FORBIDDEN = "forbidden"
    STORE_ERROR = "store_error"


@dataclass
class AccessOutcome:
    """Result of a workflow call: either a success payload or an error code."""

    error: Optional[AccessErrorCode] = None
    message: str = ""
    request: Optional[models.LevelAccessRequest] = None
    grant: Optional[models.LevelAccess] = None
    existing_request_id: Optional[UUID] = None
    requests: list[models.LevelAccessRequest] = field(default_factory=list)
    has_access: Optional[bool] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: AccessErrorCode, message: str, **kwargs: Any) -> "AccessOutcome":
        return cls(error=error, message=message, **kwargs)


class AccessWorkflowService:
    """Orchestrates access requests, reviews and direct grants.

    Collaborators are supplied per instance; the service holds no global
    state and has no knowledge of how identity or roles are stored.
    """

    def __init__(
        self,
        store: AccessRequestStore,
        sink: NotificationSink,
        directory: AccessDirectory,
    ):
        self.store = store
        self.sink = sink
        self.directory = directory

    # =========================================================================
    # Learner operations
    # =========================================================================

    def request_access(
        self,
        requester_id: UUID,
        level_id: UUID,
        message: Optional[str] = None,
    ) -> AccessOutcome:
        """
        Submit a request to unlock a level.

        Args:
            requester_id: Authenticated learner UUID
            level_id: Level UUID
            message: Optional note for reviewers

        Returns:
            AccessOutcome with the created request, or one of
            ALREADY_GRANTED, DUPLICATE_PENDING, NOT_FOUND, STORE_ERROR
        """
        try:
            level = self.directory.get_level(level_id)
            if level is None:
                return AccessOutcome.failure(AccessErrorCode.NOT_FOUND, f"Level not found: {level_id}")

            # Fast-fail pre-checks; the store re-checks and its unique index is authoritative
            if self.store.find_grant(requester_id, level_id):
                return self._already_granted(level)

            pending = self.store.find_pending_request(requester_id, level_id)
            if pending:
                return self._duplicate_pending(level, pending.id)

            request = self.store.create_request(
                requester_id,
                level_id,
                message or f"Request access to {level.title}",
            )
        except AlreadyExistsError as e:
            if e.kind == AlreadyExistsError.GRANT:
                return self._already_granted(level)
            return self._duplicate_pending(level, e.existing_id)
        except AccessStoreError as e:
            return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message)

        logger.info(f"User {requester_id} requested access to level {level_id} (request {request.id})")
        self._notify_reviewers(request, level)

        return AccessOutcome(
            request=request,
            message=f"Access request submitted for {level.title}. You will be notified when it's reviewed.",
        )

    def check_level_access(self, user_id: UUID, level_id: UUID) -> AccessOutcome:
        """
        Check whether a user may open a level.

        Public levels are open to everyone; restricted levels need a live grant.
        """
        try:
            level = self.directory.get_level(level_id)
            if level is None:
                return AccessOutcome.failure(AccessErrorCode.NOT_FOUND, f"Level not found: {level_id}")
            grant = self.store.find_grant(user_id, level_id)
        except AccessStoreError as e:
            return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message)

        has_access = level.access_policy == models.AccessPolicy.PUBLIC or grant is not None
        return AccessOutcome(grant=grant, has_access=has_access)

    # =========================================================================
    # Reviewer operations
    # =========================================================================

    def list_pending_requests(self, can_review: bool, limit: Optional[int] = None) -> AccessOutcome:
        """List pending requests for the reviewer queue."""
        if not can_review:
            return self._forbidden("view access requests")
        try:
            requests = self.store.list_pending_requests(limit=limit)
        except AccessStoreError as e:
            return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message)
        return AccessOutcome(requests=requests)

    def review_access(
        self,
        request_id: UUID,
        reviewer_id: UUID,
        decision: Union[models.AccessRequestStatus, str],
        feedback: Optional[str] = None,
        can_review: bool = False,
    ) -> AccessOutcome:
        """
        Approve or reject a pending request.

        Args:
            request_id: Request UUID
            reviewer_id: Authenticated reviewer UUID
            decision: approved or rejected
            feedback: Optional note included in the requester's notification
            can_review: Reviewer capability, decided by the authorization layer

        Returns:
            AccessOutcome with the updated request (and the grant on approval),
            or one of FORBIDDEN, NOT_FOUND, INVALID_TRANSITION, STORE_ERROR
        """
        if not can_review:
            return self._forbidden("review access requests")

        try:
            status = models.AccessRequestStatus(decision)
        except ValueError:
            status = None
        if status is None:
            return AccessOutcome.failure(
                AccessErrorCode.INVALID_TRANSITION,
                f"Invalid decision '{decision}'. Use one of: "
                f"{', '.join(s.value for s in DECISION_STATUSES)}.",
            )

        try:
            request = self.store.review_request(request_id, status, reviewer_id, feedback)
        except RequestNotFoundError as e:
            return AccessOutcome.failure(AccessErrorCode.NOT_FOUND, e.message)
        except InvalidTransitionError as e:
            return AccessOutcome.failure(AccessErrorCode.INVALID_TRANSITION, e.message)
        except AccessStoreError as e:
            return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message)

        grant = None
        if status == models.AccessRequestStatus.APPROVED:
            try:
                grant = self.store.upsert_grant(
                    request.user_id,
                    request.level_id,
                    granted_by=reviewer_id,
                    reason=APPROVED_REQUEST_REASON,
                )
            except AccessStoreError as e:
                logger.error(f"Request {request_id} approved but grant could not be written: {e.message}")
                return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message, request=request)

        logger.info(f"Reviewer {reviewer_id} {status.value} access request {request_id}")
        self._notify_requester(request, status, feedback)

        return AccessOutcome(
            request=request,
            grant=grant,
            message=f"Access request {status.value}",
        )

    def grant_access(
        self,
        target_user_id: UUID,
        level_id: UUID,
        reviewer_id: UUID,
        can_review: bool = False,
        expires_at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> AccessOutcome:
        """
        Grant access directly, without a pending request.

        Repeated grants for the same pair update the existing row.

        Returns:
            AccessOutcome with the grant, or FORBIDDEN, NOT_FOUND, STORE_ERROR
        """
        if not can_review:
            return self._forbidden("grant level access")

        try:
            target = self.directory.get_profile(target_user_id)
            if target is None:
                return AccessOutcome.failure(AccessErrorCode.NOT_FOUND, f"Target user not found: {target_user_id}")
            level = self.directory.get_level(level_id)
            if level is None:
                return AccessOutcome.failure(AccessErrorCode.NOT_FOUND, f"Level not found: {level_id}")

            grant = self.store.upsert_grant(
                target_user_id,
                level_id,
                granted_by=reviewer_id,
                expires_at=expires_at,
                reason=reason or MANUAL_GRANT_REASON,
            )
        except AccessStoreError as e:
            return AccessOutcome.failure(AccessErrorCode.STORE_ERROR, e.message)

        logger.info(f"Reviewer {reviewer_id} granted user {target_user_id} access to level {level_id}")
        self._safe_notify(
            target_user_id,
            title="New Level Unlocked!",
            message=f"You now have access to {level.title}. Start learning today!",
            payload={
                "level_id": level_id,
                "level_title": level.title,
                "granted_by": reviewer_id,
            },
        )

        return AccessOutcome(
            grant=grant,
            message=f"Access granted to {target.display_name} for {level.title}",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _already_granted(self, level: models.Level) -> AccessOutcome:
        return AccessOutcome.failure(
            AccessErrorCode.ALREADY_GRANTED,
            f"You already have access to {level.title}",
        )

    def _duplicate_pending(self, level: models.Level, existing_id: Optional[UUID]) -> AccessOutcome:
        return AccessOutcome.failure(
            AccessErrorCode.DUPLICATE_PENDING,
            f"You already have a pending request for {level.title}",
            existing_request_id=existing_id,
        )

    def _forbidden(self, action: str) -> AccessOutcome:
        logger.warning(f"Forbidden: reviewer capability required to {action}")
        return AccessOutcome.failure(
            AccessErrorCode.FORBIDDEN,
            f"Reviewer role required to {action}",
        )

    def _notify_reviewers(self, request: models.LevelAccessRequest, level: models.Level) -> None:
        try:
            requester = self.directory.get_profile(request.user_id)
            reviewer_ids = self.directory.get_reviewer_ids()
        except AccessStoreError as e:
            logger.warning(f"Skipping reviewer notifications for request {request.id}: {e.message}")
            return

        student_name = requester.display_name if requester else str(request.user_id)
        payload = {
            "request_id": request.id,
            "user_id": request.user_id,
            "level_id": request.level_id,
            "level_title": level.title,
            "student_name": student_name,
        }
        message = f"{student_name} has requested access to {level.title}"
        for reviewer_id in reviewer_ids:
            self._safe_notify(
                reviewer_id,
                title="New Access Request",
                message=message,
                payload=payload,
            )

    def _notify_requester(
        self,
        request: models.LevelAccessRequest,
        status: models.AccessRequestStatus,
        feedback: Optional[str],
    ) -> None:
        try:
            level = self.directory.get_level(request.level_id)
        except AccessStoreError as e:
            logger.warning(f"Level lookup failed while notifying for request {request.id}: {e.message}")
            level = None
        level_title = level.title if level else "the requested level"

        approved = status == models.AccessRequestStatus.APPROVED
        message = (
            f"Your request for {level_title} has been approved!"
            if approved
            else f"Your request for {level_title} has been rejected."
        )
        if feedback:
            message += f" Feedback: {feedback}"

        self._safe_notify(
            request.user_id,
            title=f"Access Request {'Approved' if approved else 'Rejected'}",
            message=message,
            payload={
                "request_id": request.id,
                "level_id": request.level_id,
                "status": status,
                "feedback": feedback,
            },
        )

    def _safe_notify(self, user_id: UUID, title: str, message: str, payload: dict) -> None:
        try:
            self.sink.notify(
                user_id,
                models.NotificationType.ANNOUNCEMENT,
                title,
                message,
                payload,
            )
        except Exception as e:
            logger.warning(f"Notification '{title}' to user {user_id} failed: {e}", exc_info=True)
