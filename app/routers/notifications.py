"""In-app notification endpoints for one account."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from app.db.repositories import Repositories, get_repositories
from app.models.enums import NotificationType
from app.models.notification import MarkAllReadResult, Notification, UnreadCount

router = APIRouter()


@router.get("/{account_id}", response_model=list[Notification])
async def list_notifications(
    account_id: UUID,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    unread_only: bool = Query(default=False),
    type: NotificationType | None = Query(default=None, description="Filter by event type"),
    repos: Repositories = Depends(get_repositories),
) -> list[Notification]:
    """Return the account's notifications, newest first."""
    return await repos.notifications.list_for_account(
        account_id,
        limit=limit,
        offset=offset,
        unread_only=unread_only,
        notification_type=type,
    )


@router.get("/{account_id}/unread-count", response_model=UnreadCount)
async def unread_count(
    account_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> UnreadCount:
    return UnreadCount(
        account_id=account_id,
        unread=await repos.notifications.count_unread(account_id),
    )


@router.patch("/{account_id}/read-all", response_model=MarkAllReadResult)
async def mark_all_read(
    account_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> MarkAllReadResult:
    return MarkAllReadResult(
        account_id=account_id,
        updated=await repos.notifications.mark_all_read(account_id),
    )


@router.patch("/{account_id}/{notification_id}/read", response_model=Notification)
async def mark_read(
    account_id: UUID,
    notification_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> Notification:
    """Mark one notification read; only its owner may do so."""
    notification = await repos.notifications.mark_read(notification_id, account_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification
