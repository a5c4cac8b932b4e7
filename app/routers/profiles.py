"""Employee profile endpoints.

Mutations go through the synchronisation handler so linked accounts and
certification holder names stay consistent.  Notification fan-out runs as
a background task after the response is sent.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.db.repositories import Repositories, get_repositories
from app.models.certification import Certification
from app.models.profile import Profile, ProfileCreate, ProfileUpdate
from app.routers.deps import dispatch_events, get_actor_id, get_fanout, get_sync_handler
from app.services.notifications import NotificationFanOut
from app.services.sync import EntitySyncHandler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{profile_id}", response_model=Profile)
async def get_profile(
    profile_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> Profile:
    profile = await repos.profiles.get(profile_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.get("/{profile_id}/certifications", response_model=list[Certification])
async def list_profile_certifications(
    profile_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> list[Certification]:
    return await repos.certifications.list_for_profile(profile_id)


@router.post("", status_code=201)
async def create_profile(
    payload: ProfileCreate,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> dict[str, Any]:
    """Create a profile; a login account is provisioned or linked."""
    outcome = await handler.create_profile(payload, actor_account_id=actor_id)
    dispatch_events(background_tasks, fanout, outcome)
    return {
        "profile": outcome.profile,
        "account_id": outcome.account.id if outcome.account else None,
    }


@router.patch("/{profile_id}", response_model=Profile)
async def update_profile(
    profile_id: UUID,
    payload: ProfileUpdate,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> Profile:
    outcome = await handler.update_profile(profile_id, payload, actor_account_id=actor_id)
    dispatch_events(background_tasks, fanout, outcome)
    return outcome.profile


@router.delete("/{profile_id}")
async def delete_profile(
    profile_id: UUID,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> dict[str, Any]:
    """Delete a profile along with its certifications and user account."""
    outcome = await handler.delete_profile(profile_id, actor_account_id=actor_id)
    dispatch_events(background_tasks, fanout, outcome)
    return {
        "profile_id": str(profile_id),
        "deleted_certifications": len(outcome.deleted_certifications),
        "account_deleted": outcome.account_deleted,
    }
