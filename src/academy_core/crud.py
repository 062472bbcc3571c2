"""CRUD operations for profiles, levels and notifications."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("academy-core.crud")


# =============================================================================
# Profiles
# =============================================================================

def get_profile(db: Session, user_id: UUID) -> Optional[models.Profile]:
    """
    Get a profile by user id.

    Args:
        db: Database session
        user_id: User UUID

    Returns:
        Profile or None if not found
    """
    return db.query(models.Profile).filter(models.Profile.id == user_id).first()


def get_reviewer_ids(db: Session) -> list[UUID]:
    """
    Get ids of every profile holding the reviewer capability (teacher/admin).

    Args:
        db: Database session

    Returns:
        List of reviewer UUIDs
    """
    rows = (
        db.query(models.Profile.id)
        .filter(models.Profile.role.in_(models.REVIEWER_ROLES))
        .order_by(models.Profile.created_at)
        .all()
    )
    return [row.id for row in rows]


def get_missing_profile_ids(db: Session, user_ids: list[UUID]) -> list[UUID]:
    """
    Find which of the given user ids have no profile.

    Args:
        db: Database session
        user_ids: Candidate user UUIDs

    Returns:
        Unknown ids, in input order, without duplicates
    """
    found = {
        row.id
        for row in db.query(models.Profile.id).filter(models.Profile.id.in_(user_ids)).all()
    }
    return [user_id for user_id in dict.fromkeys(user_ids) if user_id not in found]


def is_reviewer(profile: Optional[models.Profile]) -> bool:
    """True when the profile's role carries the reviewer capability."""
    return profile is not None and profile.role in models.REVIEWER_ROLES


# =============================================================================
# Levels
# =============================================================================

def get_level(db: Session, level_id: UUID) -> Optional[models.Level]:
    """
    Get a level by id.

    Args:
        db: Database session
        level_id: Level UUID

    Returns:
        Level or None if not found
    """
    return db.query(models.Level).filter(models.Level.id == level_id).first()


# =============================================================================
# Notifications
# =============================================================================

def create_notification(
    db: Session,
    user_id: UUID,
    notification_type: models.NotificationType,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> models.Notification:
    """
    Create a notification for one user.

    Args:
        db: Database session
        user_id: Recipient UUID
        notification_type: Notification type
        title: Short title
        message: Body text
        data: Optional JSON payload

    Returns:
        Created Notification
    """
    notification = models.Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.debug(f"Created {notification_type.value} notification for user {user_id}")
    return notification


def create_bulk_notifications(
    db: Session,
    user_ids: list[UUID],
    notification_type: models.NotificationType,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> list[models.Notification]:
    """
    Create the same notification for several users in one transaction.

    Raises:
        ValueError: If user_ids is empty
    """
    if not user_ids:
        raise ValueError("user_ids must contain at least one user")

    notifications = [
        models.Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=data,
        )
        for user_id in user_ids
    ]
    db.add_all(notifications)
    db.commit()
    for notification in notifications:
        db.refresh(notification)
    logger.info(f"Sent '{title}' to {len(notifications)} users")
    return notifications


def get_user_notifications(
    db: Session,
    user_id: UUID,
    limit: Optional[int] = None,
    unread_only: bool = False,
) -> list[models.Notification]:
    """
    Get a user's notifications, newest first.

    Args:
        db: Database session
        user_id: Recipient UUID
        limit: Optional maximum number of rows
        unread_only: Only return unread notifications

    Returns:
        List of notifications
    """
    query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        query = query.filter(models.Notification.read.is_(False))
    query = query.order_by(models.Notification.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def _get_user_notification(
    db: Session,
    notification_id: UUID,
    user_id: UUID,
) -> Optional[models.Notification]:
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        .first()
    )


def mark_notification_read(
    db: Session,
    notification_id: UUID,
    user_id: UUID,
) -> Optional[models.Notification]:
    """
    Mark one of the user's notifications as read.

    Returns:
        Updated notification, or None if it does not exist or belongs to someone else
    """
    notification = _get_user_notification(db, notification_id, user_id)
    if not notification:
        return None
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_notifications_read(db: Session, user_id: UUID) -> int:
    """
    Mark all of the user's unread notifications as read.

    Returns:
        Number of notifications updated
    """
    updated = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.read.is_(False),
        )
        .update({models.Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def get_unread_count(db: Session, user_id: UUID) -> int:
    """Count the user's unread notifications."""
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.read.is_(False),
        )
        .count()
    )


def delete_notification(db: Session, notification_id: UUID, user_id: UUID) -> bool:
    """
    Delete one of the user's notifications.

    Returns:
        True if deleted, False if not found
    """
    notification = _get_user_notification(db, notification_id, user_id)
    if not notification:
        return False
    db.delete(notification)
    db.commit()
    return True
