"""
PersonalPage Backend — Health Check Route
===========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database with SELECT 1 and reports the oracle's circuit
       breaker state. The oracle provider itself is not called.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   database reachable, oracle circuit closed
    - degraded:  database reachable, oracle circuit open
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from personalpage import __version__
from personalpage.context import AppContext
from personalpage.dependencies import get_context
from personalpage.schemas.common import HealthResponse
from personalpage.services.oracle_service import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Uptime is measured from module import
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(ctx: AppContext = Depends(get_context)) -> HealthResponse:
    db_status = "connected"
    oracle_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with ctx.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Oracle Circuit ──────────────────────────────────────────────
    if ctx.oracle.circuit_breaker.state == CircuitBreaker.OPEN:
        oracle_status = "circuit_open"
        if overall != "unhealthy":
            overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        oracle=oracle_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
