"""Login account endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.models.account import AccountEmailChange, AccountPublic
from app.routers.deps import dispatch_events, get_actor_id, get_fanout, get_sync_handler
from app.services.notifications import NotificationFanOut
from app.services.sync import EntitySyncHandler

router = APIRouter()


@router.patch("/{account_id}/email", response_model=AccountPublic)
async def change_account_email(
    account_id: UUID,
    payload: AccountEmailChange,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> AccountPublic:
    """Change the login e-mail; the linked profile is updated to match."""
    outcome = await handler.change_account_email(
        account_id, payload.email, actor_account_id=actor_id
    )
    if outcome.account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    dispatch_events(background_tasks, fanout, outcome)
    return AccountPublic.model_validate(outcome.account, from_attributes=True)
