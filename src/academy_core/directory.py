"""Read-only lookups the access workflow needs from the rest of the platform."""
import logging
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models
from .access_store import AccessStoreError

logger = logging.getLogger("academy-core.directory")


class AccessDirectory(Protocol):
    """Levels, profiles and the reviewer roster, as seen by the workflow."""

    def get_level(self, level_id: UUID) -> Optional[models.Level]:
        ...

    def get_profile(self, user_id: UUID) -> Optional[models.Profile]:
        ...

    def get_reviewer_ids(self) -> list[UUID]:
        ...


class DatabaseDirectory:
    """AccessDirectory backed by the profiles and levels tables."""

    def __init__(self, db: Session):
        self.db = db

    def _lookup(self, action: str, func, *args):
        try:
            return func(self.db, *args)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}", exc_info=True)
            raise AccessStoreError(f"Failed to {action}") from e

    def get_level(self, level_id: UUID) -> Optional[models.Level]:
        return self._lookup("load level", crud.get_level, level_id)

    def get_profile(self, user_id: UUID) -> Optional[models.Profile]:
        return self._lookup("load profile", crud.get_profile, user_id)

    def get_reviewer_ids(self) -> list[UUID]:
        return self._lookup("list reviewers", crud.get_reviewer_ids)
