"""Liveness endpoint for container healthchecks and load balancers."""

from __future__ import annotations

from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from project_escrow.infrastructure.database.engine import get_engine
from project_escrow.infrastructure.redis_client import get_redis
from project_escrow.logging_config import get_logger
from project_escrow.schemas.escrow import HealthResponse

API_VERSION = "0.1.0"
HEALTHY = "healthy"

router = APIRouter(prefix="/api/v1", tags=["Health"])
logger = get_logger(__name__)


async def _probe_database() -> str:
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("health.database_down", error=str(exc))
        return f"unhealthy: {exc}"
    return HEALTHY


async def _probe_redis() -> str:
    try:
        await get_redis().ping()
    except (RuntimeError, RedisError, OSError) as exc:
        logger.warning("health.redis_down", error=str(exc))
        return f"unhealthy: {exc}"
    return HEALTHY


@router.get("/health", response_model=HealthResponse, summary="Service and dependency status")
async def health_check() -> HealthResponse:
    """Always answers 200; ``status`` is ``degraded`` when a dependency is down."""
    database = await _probe_database()
    redis = await _probe_redis()
    return HealthResponse(
        status="ok" if database == redis == HEALTHY else "degraded",
        version=API_VERSION,
        database=database,
        redis=redis,
    )
