"""Liveness endpoint reporting database connectivity."""

import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from database.database import db_manager
from utils.logging import get_logger

logger = get_logger("health-api")
router = APIRouter(tags=["Health"])

_PROCESS_STARTED = time.monotonic()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    body = {
        "uptime": round(time.monotonic() - _PROCESS_STARTED, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    try:
        await db_manager.ping()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected", **body},
        )

    return {"status": "ok", "database": "connected", **body}
