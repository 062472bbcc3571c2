"""Request-scoped dependencies: identity, capability and service wiring.

Authentication happens upstream. The gateway verifies the session token and
forwards the user id in the ``X-User-Id`` header; this layer only resolves
the profile and derives the reviewer capability from its role.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from academy_core import crud, models
from academy_core.access_store import AccessRequestStore
from academy_core.directory import DatabaseDirectory
from academy_core.notifications import DatabaseNotificationSink
from academy_core.workflow import AccessWorkflowService

from ..database import get_db

logger = logging.getLogger("academy-core.api.dependencies")


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> models.Profile:
    """
    Resolve the authenticated caller's profile.

    Raises:
        HTTPException: 401 if the header is missing, malformed or unknown
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )

    profile = crud.get_profile(db, user_id)
    if not profile:
        logger.warning(f"Rejected request from unknown user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
        )
    return profile


def get_access_service(db: Session = Depends(get_db)) -> AccessWorkflowService:
    """Build the access workflow over the request's database session."""
    return AccessWorkflowService(
        store=AccessRequestStore(db),
        sink=DatabaseNotificationSink(db),
        directory=DatabaseDirectory(db),
    )
