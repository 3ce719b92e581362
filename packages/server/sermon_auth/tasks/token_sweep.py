"""
ARQ background task: mark expired refresh tokens as revoked.

Scheduled to run every hour. The sweep is idempotent, so transient database
errors are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.exc import OperationalError

from sermon_auth.core.config import get_settings
from sermon_auth.core.database import get_session_context
from sermon_auth.services.tokens import sweep_expired_refresh_tokens

log = structlog.get_logger()
settings = get_settings()

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_SECONDS = 1.0


async def sweep_refresh_tokens(ctx: dict, retry_base_seconds: float = RETRY_BASE_SECONDS) -> int:
    """Revoke refresh tokens past their expiry.

    Returns the number of tokens swept.
    """
    last_exc: Exception | None = None
    for attempt in range(MAX_RETRIES):
        try:
            async with get_session_context() as session:
                count = await sweep_expired_refresh_tokens(
                    session, now=datetime.now(timezone.utc)
                )
            if count:
                log.info("token_sweep.completed", count=count)
            return count
        except OperationalError as exc:
            last_exc = exc

        backoff = retry_base_seconds * (2 ** attempt)
        log.warning(
            "token_sweep.retry",
            attempt=attempt + 1,
            backoff=backoff,
            error=str(last_exc),
        )
        await asyncio.sleep(backoff)

    log.error("token_sweep.failed", error=str(last_exc))
    raise last_exc


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [sweep_refresh_tokens]
    cron_jobs = [
        # Run every hour
        cron(sweep_refresh_tokens, minute=0, run_at_startup=True),
    ]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
