"""Notification sink used by the access workflow.

The workflow only knows the narrow ``NotificationSink`` interface. The
database-backed sink writes in-app notification rows; push or email delivery
would be further sinks behind the same interface.
"""
import logging
from typing import Any, Optional, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models

logger = logging.getLogger("academy-core.notifications")


class NotificationError(Exception):
    """Raised by a sink when a notification could not be recorded."""


class NotificationSink(Protocol):
    """Fire-and-forget notification boundary."""

    def notify(
        self,
        user_id: UUID,
        type: models.NotificationType,
        title: str,
        message: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        ...


class DatabaseNotificationSink:
    """Writes notifications to the ``notifications`` table.

    Shares the caller's session. Access-state writes are committed before any
    notify call, so rolling back a failed insert here only discards the
    notification itself.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: UUID,
        type: models.NotificationType,
        title: str,
        message: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            crud.create_notification(
                self.db,
                user_id=user_id,
                notification_type=type,
                title=title,
                message=message,
                data=_jsonable(payload),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise NotificationError(f"Failed to notify user {user_id}: {e}") from e


def _jsonable(payload: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Stringify UUID and enum values so the payload fits a JSON column."""
    if payload is None:
        return None
    result = {}
    for key, value in payload.items():
        if isinstance(value, UUID):
            value = str(value)
        elif isinstance(value, models.AccessRequestStatus):
            value = value.value
        result[key] = value
    return result
