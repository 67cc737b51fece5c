"""Idempotency keys for money-moving commands, held in Redis.

A key is claimed with ``SET NX EX`` before the command runs and released if
the command fails, so a client may retry with the same key after an error
but never charge twice for one that succeeded.
"""

from __future__ import annotations

import redis.asyncio as aioredis

from project_escrow.config import get_settings
from project_escrow.logging_config import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "escrow:idempotency:"

_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    global _client
    settings = get_settings()
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    await client.ping()
    _client = client
    logger.info("redis.connected")
    return client


def get_redis() -> aioredis.Redis:
    if _client is None:
        raise RuntimeError("Redis is not connected")
    return _client


async def close_redis() -> None:
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("redis.disconnected")


async def claim_idempotency(key: str, value: str = "1") -> bool:
    """Take ``key`` for the configured TTL; False if someone already holds it."""
    ttl = get_settings().redis_idempotency_ttl_seconds
    return bool(await get_redis().set(KEY_PREFIX + key, value, nx=True, ex=ttl))


async def release_idempotency(key: str) -> None:
    await get_redis().delete(KEY_PREFIX + key)
