"""API endpoints for the caller's notification inbox."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy_core import crud, models, schemas

from ...database import get_db
from ..dependencies import get_current_user

logger = logging.getLogger("academy-core.notifications_api")

router = APIRouter(tags=["notifications"])


def _handle_store_error(db: Session, action: str, e: SQLAlchemyError) -> HTTPException:
    """Roll back and convert a database failure into a structured 500."""
    db.rollback()
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "store_error",
            "message": f"Failed to {action}",
        },
    )


def _not_found(notification_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "not_found",
            "message": f"Notification not found: {notification_id}",
        },
    )


@router.get("/", response_model=list[schemas.NotificationResponse])
def list_notifications(
    limit: Optional[int] = Query(None, ge=1, le=200, description="Maximum number of notifications"),
    unread_only: bool = Query(False, description="Only return unread notifications"),
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """List the caller's notifications, newest first."""
    try:
        return crud.get_user_notifications(db, current_user.id, limit=limit, unread_only=unread_only)
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "list notifications", e)


@router.get("/unread-count", response_model=schemas.UnreadCountResponse)
def unread_count(
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """Count the caller's unread notifications."""
    try:
        return schemas.UnreadCountResponse(count=crud.get_unread_count(db, current_user.id))
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "count unread notifications", e)


@router.post("/read-all", response_model=schemas.MarkAllReadResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """Mark all of the caller's notifications as read."""
    try:
        updated = crud.mark_all_notifications_read(db, current_user.id)
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "mark notifications as read", e)
    return schemas.MarkAllReadResponse(updated=updated)


@router.post("/send", response_model=schemas.NotificationSendResponse, status_code=status.HTTP_201_CREATED)
def send_notification(
    body: schemas.NotificationSend,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """
    Send one notification to several users. Reviewer role required.

    - **user_ids**: Recipients (at least one, each an existing user)
    - **title**, **message**, **type**: Required notification fields
    - **data**: Optional JSON payload

    Returns 404 `not_found` listing any recipient without a profile; nothing
    is sent in that case.
    """
    if not crud.is_reviewer(current_user):
        logger.warning(f"User {current_user.id} tried to send notifications without reviewer role")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "forbidden",
                "message": "Reviewer role required to send notifications",
            },
        )

    try:
        missing = crud.get_missing_profile_ids(db, body.user_ids)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={
                    "error": "not_found",
                    "message": f"Unknown recipients: {', '.join(str(user_id) for user_id in missing)}",
                    "user_ids": [str(user_id) for user_id in missing],
                },
            )

        notifications = crud.create_bulk_notifications(
            db,
            user_ids=body.user_ids,
            notification_type=body.type,
            title=body.title,
            message=body.message,
            data=body.data,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": "invalid_request",
                "message": str(e),
            },
        )
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "send notifications", e)

    return schemas.NotificationSendResponse(
        count=len(notifications),
        notifications=[schemas.NotificationResponse.model_validate(n) for n in notifications],
    )


@router.post("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """Mark one of the caller's notifications as read."""
    try:
        notification = crud.mark_notification_read(db, notification_id, current_user.id)
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "mark notification as read", e)
    if not notification:
        raise _not_found(notification_id)
    return notification


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.Profile = Depends(get_current_user),
):
    """Delete one of the caller's notifications."""
    try:
        deleted = crud.delete_notification(db, notification_id, current_user.id)
    except SQLAlchemyError as e:
        raise _handle_store_error(db, "delete notification", e)
    if not deleted:
        raise _not_found(notification_id)
