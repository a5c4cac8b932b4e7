"""Health check endpoint.

Returns service status including database connectivity, scheduler state
and the mail transport in use.
"""

import logging
from typing import Any

from fastapi import APIRouter
from starlette.responses import JSONResponse

from app.core.constants import ACCOUNTS_TABLE
from app.db.supabase import get_supabase
from app.scheduler.jobs import is_scheduler_running
from app.services.delivery import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check() -> Any:
    """Return 200 OK when healthy, 503 when the database is down."""
    db_status = "disconnected"

    try:
        client = await get_supabase()
        result = await client.table(ACCOUNTS_TABLE).select("id").limit(1).execute()
        if result is not None:
            db_status = "connected"
    except Exception:
        logger.warning("Health check: Supabase connection failed", exc_info=True)

    payload: dict[str, str | None] = {
        "status": "ok" if db_status == "connected" else "degraded",
        "database": db_status,
        "scheduler": "running" if is_scheduler_running() else "stopped",
        "mail": get_gateway().provider,
    }

    if db_status != "connected":
        return JSONResponse(status_code=503, content=payload)

    return payload
