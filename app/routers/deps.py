"""Shared FastAPI dependencies for the API routers."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import BackgroundTasks, Depends, Header

from app.db.repositories import Repositories, get_repositories
from app.services.delivery import get_gateway
from app.services.notifications import NotificationFanOut
from app.services.sync import EntitySyncHandler, SyncOutcome

logger = logging.getLogger(__name__)


def get_sync_handler(
    repos: Repositories = Depends(get_repositories),
) -> EntitySyncHandler:
    return EntitySyncHandler(repos)


def get_fanout(
    repos: Repositories = Depends(get_repositories),
) -> NotificationFanOut:
    return NotificationFanOut(repos, get_gateway())


def get_actor_id(
    x_actor_account_id: UUID | None = Header(default=None),
) -> UUID | None:
    """Account performing the mutation, if the caller identifies one."""
    return x_actor_account_id


def dispatch_events(
    background_tasks: BackgroundTasks,
    fanout: NotificationFanOut,
    outcome: SyncOutcome,
) -> None:
    """Queue the outcome's events for fan-out after the response is sent."""
    if not outcome.events:
        return
    logger.info(
        "events_queued",
        extra={"events": [event.event_type.value for event in outcome.events]},
    )
    background_tasks.add_task(fanout.notify_many, list(outcome.events))
