"""Persistence for level access requests and access grants.

The store owns the two uniqueness rules of the access workflow:
- at most one pending request per (user_id, level_id), enforced by a
  partial unique index so concurrent submissions cannot both succeed
- at most one grant per (user_id, level_id), written with upsert semantics

Notification dispatch happens in the caller, after the write has committed.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from . import models
from .state_machine import DECISION_STATUSES, StateTransitionError, validate_transition

logger = logging.getLogger("academy-core.access_store")


class AccessStoreError(Exception):
    """Raised when the underlying database operation fails."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AlreadyExistsError(AccessStoreError):
    """Raised when a pending request or a live grant already exists for the pair."""

    PENDING = "pending"
    GRANT = "grant"

    def __init__(self, message: str, kind: str, existing_id: Optional[UUID] = None):
        super().__init__(message)
        self.kind = kind
        self.existing_id = existing_id


class RequestNotFoundError(AccessStoreError):
    """Raised when an access request id does not resolve to a row."""

    def __init__(self, request_id: UUID):
        super().__init__(f"Access request not found: {request_id}")
        self.request_id = request_id


class InvalidTransitionError(StateTransitionError):
    """Raised when reviewing a request that is no longer pending."""

    def __init__(self, request_id: UUID, error: StateTransitionError):
        super().__init__(
            message=error.message,
            current_status=error.current_status,
            requested_status=error.requested_status,
            allowed_transitions=error.allowed_transitions,
        )
        self.request_id = request_id


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are already UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class AccessRequestStore:
    """CRUD for LevelAccessRequest and LevelAccess rows over one session."""

    def __init__(self, db: Session):
        self.db = db

    def _store_error(self, action: str, error: SQLAlchemyError) -> AccessStoreError:
        self.db.rollback()
        logger.error(f"Failed to {action}: {error}", exc_info=True)
        return AccessStoreError(f"Failed to {action}")

    # =========================================================================
    # Reads
    # =========================================================================

    def get_request(self, request_id: UUID) -> Optional[models.LevelAccessRequest]:
        """
        Get an access request by id.

        Args:
            request_id: Request UUID

        Returns:
            LevelAccessRequest or None if not found
        """
        try:
            return self.db.get(models.LevelAccessRequest, request_id)
        except SQLAlchemyError as e:
            raise self._store_error("load access request", e) from e

    def find_pending_request(
        self,
        user_id: UUID,
        level_id: UUID,
    ) -> Optional[models.LevelAccessRequest]:
        """
        Find the pending request for a (user, level) pair.

        Args:
            user_id: Requester UUID
            level_id: Level UUID

        Returns:
            The pending LevelAccessRequest, or None
        """
        try:
            return (
                self.db.query(models.LevelAccessRequest)
                .filter(
                    models.LevelAccessRequest.user_id == user_id,
                    models.LevelAccessRequest.level_id == level_id,
                    models.LevelAccessRequest.status == models.AccessRequestStatus.PENDING,
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise self._store_error("look up pending access request", e) from e

    def find_grant(
        self,
        user_id: UUID,
        level_id: UUID,
        now: Optional[datetime] = None,
    ) -> Optional[models.LevelAccess]:
        """
        Find the live grant for a (user, level) pair.

        Expired grants are ignored; expiry is checked at read time only.

        Args:
            user_id: User UUID
            level_id: Level UUID
            now: Reference time (defaults to utcnow)

        Returns:
            The live LevelAccess row, or None
        """
        now = as_naive_utc(now) or datetime.utcnow()
        try:
            return (
                self.db.query(models.LevelAccess)
                .filter(
                    and_(
                        models.LevelAccess.user_id == user_id,
                        models.LevelAccess.level_id == level_id,
                        or_(
                            models.LevelAccess.expires_at.is_(None),
                            models.LevelAccess.expires_at > now,
                        ),
                    )
                )
                .first()
            )
        except SQLAlchemyError as e:
            raise self._store_error("look up access grant", e) from e

    def list_pending_requests(self, limit: Optional[int] = None) -> list[models.LevelAccessRequest]:
        """
        List pending requests, newest first, with requester and level loaded.

        Args:
            limit: Optional maximum number of rows

        Returns:
            List of pending LevelAccessRequest rows
        """
        try:
            query = (
                self.db.query(models.LevelAccessRequest)
                .options(
                    joinedload(models.LevelAccessRequest.requester),
                    joinedload(models.LevelAccessRequest.level),
                )
                .filter(models.LevelAccessRequest.status == models.AccessRequestStatus.PENDING)
                .order_by(models.LevelAccessRequest.created_at.desc())
            )
            if limit:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            raise self._store_error("list pending access requests", e) from e

    # =========================================================================
    # Writes
    # =========================================================================

    def create_request(
        self,
        user_id: UUID,
        level_id: UUID,
        message: Optional[str],
    ) -> models.LevelAccessRequest:
        """
        Create a pending access request.

        The pre-checks give a precise error for the common case; the partial
        unique index closes the race between concurrent submissions.

        Args:
            user_id: Requester UUID
            level_id: Level UUID
            message: Free text from the requester

        Returns:
            Created LevelAccessRequest

        Raises:
            AlreadyExistsError: If a live grant or a pending request exists
            AccessStoreError: On any other database failure
        """
        grant = self.find_grant(user_id, level_id)
        if grant:
            raise AlreadyExistsError(
                f"User {user_id} already has access to level {level_id}",
                kind=AlreadyExistsError.GRANT,
                existing_id=grant.id,
            )

        pending = self.find_pending_request(user_id, level_id)
        if pending:
            raise AlreadyExistsError(
                f"User {user_id} already has a pending request for level {level_id}",
                kind=AlreadyExistsError.PENDING,
                existing_id=pending.id,
            )

        db_request = models.LevelAccessRequest(
            user_id=user_id,
            level_id=level_id,
            message=message,
            status=models.AccessRequestStatus.PENDING,
        )
        try:
            self.db.add(db_request)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Lost the race to a concurrent submission for the same pair
            winner = self.find_pending_request(user_id, level_id)
            if winner is None:
                logger.error(f"Integrity error creating access request: {e}", exc_info=True)
                raise AccessStoreError("Failed to create access request") from e
            logger.info(f"Concurrent access request for user {user_id} level {level_id} rejected by unique index")
            raise AlreadyExistsError(
                f"User {user_id} already has a pending request for level {level_id}",
                kind=AlreadyExistsError.PENDING,
                existing_id=winner.id,
            ) from e
        except SQLAlchemyError as e:
            raise self._store_error("create access request", e) from e

        try:
            self.db.refresh(db_request)
        except SQLAlchemyError as e:
            raise self._store_error("load created access request", e) from e
        logger.debug(f"Created access request {db_request.id} for user {user_id} level {level_id}")
        return db_request

    def review_request(
        self,
        request_id: UUID,
        status: models.AccessRequestStatus,
        reviewer_id: UUID,
        feedback: Optional[str] = None,
    ) -> models.LevelAccessRequest:
        """
        Record a reviewer decision on a pending request.

        Status, reviewed_at, reviewed_by and feedback are written by a single
        conditional UPDATE guarded on status = pending, so only one of two
        concurrent reviewers can succeed.

        Args:
            request_id: Request UUID
            status: approved or rejected
            reviewer_id: Reviewer UUID
            feedback: Optional note from the reviewer

        Returns:
            Updated LevelAccessRequest

        Raises:
            InvalidTransitionError: If the request is not pending, or status is not a decision
            RequestNotFoundError: If no request has this id
            AccessStoreError: On any other database failure
        """
        if status not in DECISION_STATUSES:
            # Not a decision; a missing request still reports NotFound first
            db_request = self.get_request(request_id)
            if db_request is None:
                raise RequestNotFoundError(request_id)
            try:
                validate_transition(db_request.status, status)
            except StateTransitionError as e:
                raise InvalidTransitionError(request_id, e) from e

        try:
            result = self.db.execute(
                update(models.LevelAccessRequest)
                .where(
                    models.LevelAccessRequest.id == request_id,
                    models.LevelAccessRequest.status == models.AccessRequestStatus.PENDING,
                )
                .values(
                    status=status,
                    reviewed_at=datetime.utcnow(),
                    reviewed_by=reviewer_id,
                    feedback=feedback,
                )
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            if updated:
                self.db.commit()
            else:
                self.db.rollback()
        except SQLAlchemyError as e:
            raise self._store_error("review access request", e) from e

        db_request = self.get_request(request_id)
        if db_request is None:
            raise RequestNotFoundError(request_id)

        if not updated:
            try:
                validate_transition(db_request.status, status)
            except StateTransitionError as e:
                raise InvalidTransitionError(request_id, e) from e

        try:
            self.db.refresh(db_request)
        except SQLAlchemyError as e:
            raise self._store_error("load reviewed access request", e) from e

        logger.debug(f"Access request {request_id} marked {status.value} by {reviewer_id}")
        return db_request

    def upsert_grant(
        self,
        user_id: UUID,
        level_id: UUID,
        granted_by: Optional[UUID],
        expires_at: Optional[datetime] = None,
        reason: str = "manual",
    ) -> models.LevelAccess:
        """
        Insert or replace the grant keyed by (user_id, level_id).

        Last writer wins on granted_by, granted_at, expires_at and reason.

        Args:
            user_id: User receiving access
            level_id: Level UUID
            granted_by: Reviewer UUID
            expires_at: Optional advisory expiry; aware values are stored as naive UTC
            reason: Why access was granted ('manual', 'approved_request', ...)

        Returns:
            The inserted or updated LevelAccess row

        Raises:
            AccessStoreError: On database failure
        """
        values = {
            "granted_by": granted_by,
            "granted_at": datetime.utcnow(),
            "expires_at": as_naive_utc(expires_at),
            "reason": reason,
        }

        try:
            grant = self._write_grant(user_id, level_id, values)
        except IntegrityError:
            # A concurrent writer inserted the row first; update it instead
            self.db.rollback()
            try:
                grant = self._write_grant(user_id, level_id, values)
            except SQLAlchemyError as e:
                raise self._store_error("upsert access grant", e) from e
        except SQLAlchemyError as e:
            raise self._store_error("upsert access grant", e) from e

        logger.debug(f"Upserted access grant for user {user_id} level {level_id} ({reason})")
        return grant

    def _write_grant(self, user_id: UUID, level_id: UUID, values: dict) -> models.LevelAccess:
        grant = (
            self.db.query(models.LevelAccess)
            .filter(
                models.LevelAccess.user_id == user_id,
                models.LevelAccess.level_id == level_id,
            )
            .with_for_update()
            .first()
        )
        if grant:
            for field, value in values.items():
                setattr(grant, field, value)
        else:
            grant = models.LevelAccess(user_id=user_id, level_id=level_id, **values)
            self.db.add(grant)
        self.db.commit()
        self.db.refresh(grant)
        return grant
