"""
Natours Backend: Health Check Route
====================================

What:  GET /health for Docker health checks and load balancer probes.
How:   The database is the only hard dependency: when SELECT 1 fails the
       probe answers 503 so the instance is taken out of rotation.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from natours import __version__
from natours.database import engine
from natours.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

STARTED_AT = time.monotonic()


async def database_reachable() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        return False
    return True


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(response: Response) -> HealthResponse:
    db_ok = await database_reachable()
    if not db_ok:
        response.status_code = 503
    return HealthResponse(
        status="healthy" if db_ok else "unhealthy",
        version=__version__,
        database="connected" if db_ok else "disconnected",
        uptime_seconds=round(time.monotonic() - STARTED_AT, 2),
    )
