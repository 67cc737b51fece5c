"""ASGI entry point.

    uvicorn project_escrow.main:app --host 0.0.0.0 --port 8000

Startup opens the database engine (creating tables in development) and
tries Redis. Redis only backs idempotency keys, so the service still boots
without it and reports ``degraded`` on /api/v1/health.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from redis.exceptions import RedisError

from project_escrow.api.middleware import setup_middleware
from project_escrow.api.routes import escrow, health, notifications
from project_escrow.config import get_settings
from project_escrow.infrastructure.database.engine import close_db, init_db
from project_escrow.infrastructure.redis_client import close_redis, init_redis
from project_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

ROUTERS = (health.router, escrow.router, notifications.router)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        currency=settings.escrow_currency,
        email=settings.email_enabled,
        push=settings.push_configured,
    )

    await init_db()
    try:
        await init_redis()
    except (RedisError, OSError) as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)
    try:
        yield
    finally:
        await close_redis()
        await close_db()
        logger.info("app.stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    docs = settings.is_development
    app = FastAPI(
        title="Project Escrow",
        summary="Offers, locked terms, two-phase escrow and rating-gated payout release.",
        version=health.API_VERSION,
        debug=settings.app_debug,
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
    )
    setup_middleware(app)
    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()
