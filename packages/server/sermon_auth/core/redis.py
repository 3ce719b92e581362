"""Redis client backing the access-token denylist."""

from __future__ import annotations

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from sermon_auth.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Return the shared client, connecting lazily on first use."""
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            health_check_interval=30,
        )
    return _client


async def ping_redis() -> bool:
    try:
        client = await get_redis()
        await client.ping()
    except (RedisError, OSError) as exc:
        log.warning("redis.unreachable", error=str(exc))
        return False
    return True


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
