"""Health and metrics endpoints.

``GET /health``
    Checks the database (``SELECT 1``) and Redis (``PING``) in parallel.
    Always returns HTTP 200; ``status`` is ``"ok"`` or ``"degraded"``.

``GET /metrics``
    Prometheus text exposition, or 404 when ``metrics_enabled`` is off.

These endpoints are diagnostic and must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
import sqlalchemy as sa
from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from echo_garden.config.settings import get_settings
from echo_garden.core.database import AsyncSessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


async def _check_database() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        return "error"


async def _check_redis() -> str:
    settings = get_settings()
    try:
        client: aioredis.Redis = aioredis.from_url(
            settings.redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        await client.ping()
        await client.aclose()
        return "ok"
    except Exception:
        logger.exception("Health check: Redis unreachable")
        return "error"


@router.get("/health")
async def system_health() -> JSONResponse:
    """Return process health including database and Redis connectivity.

    Returns:
        JSON with keys ``status``, ``database``, ``redis``, ``timestamp``.
    """
    db_status, redis_status = await asyncio.gather(_check_database(), _check_redis())
    payload = {
        "status": "ok" if db_status == "ok" and redis_status == "ok" else "degraded",
        "database": db_status,
        "redis": redis_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("system_health_check", extra={"health": payload})
    return JSONResponse(payload)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    if not get_settings().metrics_enabled:
        return Response(status_code=404)
    from echo_garden.api.metrics import get_metrics_response  # noqa: PLC0415

    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
