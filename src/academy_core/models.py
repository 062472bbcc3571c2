"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    Index,
    JSON,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserRole(str, enum.Enum):
    """Profile role enum."""

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


# Roles holding the reviewer capability for access requests
REVIEWER_ROLES = (UserRole.TEACHER, UserRole.ADMIN)


class AccessPolicy(str, enum.Enum):
    """Level access policy enum."""

    PUBLIC = "public"
    RESTRICTED = "restricted"


class AccessRequestStatus(str, enum.Enum):
    """Lifecycle status enum for level access requests.

    Valid states:
    - pending: Submitted by a learner, awaiting a reviewer decision
    - approved: Terminal, a grant was issued
    - rejected: Terminal, no grant issued
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    LESSON = "lesson"
    ACHIEVEMENT = "achievement"
    REMINDER = "reminder"
    ANNOUNCEMENT = "announcement"
    ASSIGNMENT = "assignment"


class Profile(Base):
    """
    Profile model for platform users.

    Identity is owned by the external auth provider; the profile id is the
    provider's user id. Role drives reviewer capability.
    """

    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid4)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(
        Enum(UserRole, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=UserRole.STUDENT,
        index=True
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or str(self.id)

    def __repr__(self) -> str:
        return f"<Profile {self.display_name} ({self.role.value})>"


class Level(Base):
    """
    Level model for curriculum units.

    Restricted levels require an access grant; public levels are open to all.
    """

    __tablename__ = "levels"

    id = Column(Uuid, primary_key=True, default=uuid4)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    level_number = Column(Integer, nullable=False, default=1)
    access_policy = Column(
        Enum(AccessPolicy, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=AccessPolicy.RESTRICTED
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Level {self.level_number}: {self.title}>"


class LevelAccessRequest(Base):
    """
    A learner's request to unlock a restricted level.

    Created pending, reviewed exactly once, never deleted in normal operation.
    """

    __tablename__ = "level_access_requests"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    level_id = Column(Uuid, ForeignKey("levels.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    status = Column(
        Enum(AccessRequestStatus, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=AccessRequestStatus.PENDING,
        index=True
    )
    feedback = Column(Text, nullable=True)

    # Review fields
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    requester = relationship("Profile", foreign_keys=[user_id])
    reviewer = relationship("Profile", foreign_keys=[reviewed_by])
    level = relationship("Level")

    # Only one pending request per (user_id, level_id)
    __table_args__ = (
        Index(
            "uq_level_access_requests_pending",
            "user_id",
            "level_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<LevelAccessRequest {self.id} user={self.user_id} level={self.level_id} status={self.status.value}>"


class LevelAccess(Base):
    """
    Durable record that a user may access a level.

    Keyed by (user_id, level_id); writes are upserts. Expiry is advisory.
    """

    __tablename__ = "level_access"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    level_id = Column(Uuid, ForeignKey("levels.id", ondelete="CASCADE"), nullable=False, index=True)
    granted_by = Column(Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    granted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)
    reason = Column(String(100), nullable=False, default="manual")

    # Relationships
    level = relationship("Level")

    __table_args__ = (
        UniqueConstraint("user_id", "level_id", name="uq_level_access_user_level"),
    )

    def __repr__(self) -> str:
        return f"<LevelAccess user={self.user_id} level={self.level_id} reason={self.reason}>"


class Notification(Base):
    """In-app notification delivered to a single user."""

    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(
        Enum(NotificationType, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=NotificationType.ANNOUNCEMENT
    )
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONType, nullable=True)
    read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Notification {self.type.value}: {self.title[:30]}>"
