"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from .models import (
    AccessRequestStatus,
    NotificationType,
)


# Access Request Schemas

class AccessRequestCreate(BaseModel):
    """Schema for a learner's access request."""

    level_id: UUID = Field(..., description="Level to unlock")
    message: Optional[str] = Field(None, max_length=2000, description="Optional note for reviewers")


class AccessReview(BaseModel):
    """Schema for a reviewer decision on a pending request."""

    decision: AccessRequestStatus = Field(..., description="approved or rejected")
    feedback: Optional[str] = Field(None, max_length=2000, description="Optional note sent to the requester")


class AccessRequestResponse(BaseModel):
    """Schema for access request responses."""

    id: UUID
    user_id: UUID
    level_id: UUID
    message: Optional[str] = None
    status: AccessRequestStatus
    feedback: Optional[str] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PendingAccessRequestItem(AccessRequestResponse):
    """Schema for the reviewer queue, with display fields."""

    student_name: Optional[str] = None
    level_title: Optional[str] = None


class AccessRequestCreated(BaseModel):
    """Schema returned after a successful access request."""

    request: AccessRequestResponse
    message: str


# Access Grant Schemas

class AccessGrantCreate(BaseModel):
    """Schema for a direct grant by a reviewer."""

    user_id: UUID = Field(..., description="User receiving access")
    level_id: UUID = Field(..., description="Level to unlock")
    expires_at: Optional[datetime] = Field(None, description="Optional advisory expiry")
    reason: Optional[str] = Field(None, max_length=100, description="Grant reason (defaults to 'manual')")


class AccessGrantResponse(BaseModel):
    """Schema for access grant responses."""

    id: UUID
    user_id: UUID
    level_id: UUID
    granted_by: Optional[UUID] = None
    granted_at: datetime
    expires_at: Optional[datetime] = None
    reason: str

    model_config = ConfigDict(from_attributes=True)


class AccessReviewResponse(BaseModel):
    """Schema returned after a review decision."""

    request: AccessRequestResponse
    grant: Optional[AccessGrantResponse] = None
    message: str


class LevelAccessResponse(BaseModel):
    """Schema for a level access check."""

    level_id: UUID
    has_access: bool
    grant: Optional[AccessGrantResponse] = None


# Notification Schemas

class NotificationResponse(BaseModel):
    """Schema for notification responses."""

    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    data: Optional[dict] = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class NotificationSend(BaseModel):
    """Schema for sending one notification to several users."""

    user_ids: list[UUID] = Field(..., min_length=1, description="Recipients")
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    type: NotificationType = Field(..., description="Notification type")
    data: Optional[dict] = None


class NotificationSendResponse(BaseModel):
    """Schema returned after a bulk send."""

    count: int
    notifications: list[NotificationResponse]


class UnreadCountResponse(BaseModel):
    """Schema for the unread notification count."""

    count: int


class MarkAllReadResponse(BaseModel):
    """Schema for mark-all-as-read results."""

    updated: int
