"""Certification endpoints.

Holder names are resolved from the owning profile and the expiry reminder
markers are reset whenever the expiry date changes.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.db.repositories import Repositories, get_repositories
from app.models.certification import Certification, CertificationCreate, CertificationUpdate
from app.routers.deps import dispatch_events, get_actor_id, get_fanout, get_sync_handler
from app.services.notifications import NotificationFanOut
from app.services.sync import EntitySyncHandler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{certification_id}", response_model=Certification)
async def get_certification(
    certification_id: UUID,
    repos: Repositories = Depends(get_repositories),
) -> Certification:
    cert = await repos.certifications.get(certification_id)
    if cert is None:
        raise HTTPException(status_code=404, detail="Certification not found")
    return cert


@router.post("", status_code=201, response_model=Certification)
async def create_certification(
    payload: CertificationCreate,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> Certification:
    outcome = await handler.create_certification(payload, actor_account_id=actor_id)
    dispatch_events(background_tasks, fanout, outcome)
    return outcome.certification


@router.patch("/{certification_id}", response_model=Certification)
async def update_certification(
    certification_id: UUID,
    payload: CertificationUpdate,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> Certification:
    outcome = await handler.update_certification(
        certification_id, payload, actor_account_id=actor_id
    )
    dispatch_events(background_tasks, fanout, outcome)
    return outcome.certification


@router.delete("/{certification_id}")
async def delete_certification(
    certification_id: UUID,
    background_tasks: BackgroundTasks,
    handler: EntitySyncHandler = Depends(get_sync_handler),
    fanout: NotificationFanOut = Depends(get_fanout),
    actor_id: UUID | None = Depends(get_actor_id),
) -> dict[str, Any]:
    outcome = await handler.delete_certification(certification_id, actor_account_id=actor_id)
    dispatch_events(background_tasks, fanout, outcome)
    return {"certification_id": str(certification_id), "deleted": True}
