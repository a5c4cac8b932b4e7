"""Pydantic models for the ``notifications`` table and fan-out events.

A notification is immutable after creation except for ``is_read`` /
``read_at``.  A ``NotificationEvent`` is the in-process payload handed to
the fan-out engine; its ``credential`` is never serialised.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import NotificationPriority, NotificationType


class NotificationCreate(BaseModel):
    """Payload for inserting a notification record."""
    account_id: UUID
    profile_id: UUID | None = None
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.low
    title: str
    message: str
    metadata: dict[str, Any] = {}


class Notification(BaseModel):
    """Full notification record returned from the database."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    profile_id: UUID | None = None
    type: NotificationType
    priority: NotificationPriority = NotificationPriority.low
    title: str
    message: str
    is_read: bool = False
    read_at: datetime | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class NotificationEvent(BaseModel):
    """A domain event to be fanned out to the subject and administrators.

    ``details`` carries display values used for rendering (certificate name,
    expiry date, employee name) so events for already-deleted records can
    still be described.
    """
    event_type: NotificationType
    subject_profile_id: UUID | None = None
    related_entity_id: UUID | None = None
    days_value: int | None = None
    updated_field_names: list[str] | None = None
    actor_account_id: UUID | None = None
    details: dict[str, Any] = {}
    credential: str | None = Field(default=None, exclude=True, repr=False)


class UnreadCount(BaseModel):
    """Response for the unread-count endpoint."""
    account_id: UUID
    unread: int


class MarkAllReadResult(BaseModel):
    """Response for the mark-all-read endpoint."""
    account_id: UUID
    updated: int
