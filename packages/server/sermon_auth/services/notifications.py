"""
Outbound notifications: invitation, welcome, password-reset and verification emails.

Senders report delivery as a bool and never raise into callers; the auth
flows treat a failed send as a warning. ``LoggingNotificationSender`` is
used when no webhook is configured (local dev, tests).
"""

from __future__ import annotations

import asyncio
import math
from typing import Optional, Protocol

import httpx
import structlog

from sermon_auth.core.config import get_settings
from sermon_auth.core.logging import redact_email

log = structlog.get_logger()
settings = get_settings()

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_SECONDS = 1.0


class NotificationSender(Protocol):
    async def send_invitation_email(
        self,
        to_email: str,
        to_name: str,
        org_name: str,
        from_name: str,
        token: str,
        message: Optional[str] = None,
    ) -> bool: ...

    async def send_welcome_email(self, to_email: str, to_name: str, org_name: str) -> bool: ...

    async def send_password_reset_email(self, to_email: str, to_name: str, token: str) -> bool: ...

    async def send_email_verification(self, to_email: str, to_name: str, token: str) -> bool: ...


def _link(path: str, token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/{path}?token={token}"


# ---------------------------------------------------------------------------
# Logging sender
# ---------------------------------------------------------------------------

class LoggingNotificationSender:
    """Records notifications in the log instead of delivering them."""

    async def send_invitation_email(
        self,
        to_email: str,
        to_name: str,
        org_name: str,
        from_name: str,
        token: str,
        message: Optional[str] = None,
    ) -> bool:
        log.info(
            "notification.invitation",
            to=redact_email(to_email),
            org_name=org_name,
            from_name=from_name,
            has_message=bool(message),
        )
        return True

    async def send_welcome_email(self, to_email: str, to_name: str, org_name: str) -> bool:
        log.info("notification.welcome", to=redact_email(to_email), org_name=org_name)
        return True

    async def send_password_reset_email(self, to_email: str, to_name: str, token: str) -> bool:
        log.info("notification.password_reset", to=redact_email(to_email))
        return True

    async def send_email_verification(self, to_email: str, to_name: str, token: str) -> bool:
        log.info("notification.email_verification", to=redact_email(to_email))
        return True


# ---------------------------------------------------------------------------
# Webhook sender
# ---------------------------------------------------------------------------

class WebhookNotificationSender:
    """
    Posts notification payloads to an HTTP endpoint (mail relay).

    Retries connection failures and 5xx responses with exponential backoff,
    honours 429 ``Retry-After``, gives up immediately on other 4xx.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
    ):
        self._url = url
        self._timeout = timeout
        self._client = client
        self._retry_base_seconds = retry_base_seconds

    def _retry_after(self, header: str | None, fallback: float) -> float:
        """Seconds to wait on a 429, capped at the request timeout.

        Only the delta-seconds form is honoured; anything else uses ``fallback``.
        """
        try:
            seconds = float(header) if header is not None else fallback
        except ValueError:
            seconds = fallback
        if not math.isfinite(seconds):
            seconds = fallback
        return min(max(seconds, 0.0), self._timeout)

    async def _post(self, client: httpx.AsyncClient, body: dict) -> bool:
        last_exc: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = await client.post(self._url, json=body)

                if resp.status_code == 429:
                    retry_after = self._retry_after(
                        resp.headers.get("Retry-After"),
                        self._retry_base_seconds * (attempt + 1),
                    )
                    log.warning("notification.rate_limited", retry_after=retry_after)
                    await asyncio.sleep(retry_after)
                    continue

                resp.raise_for_status()
                return True

            except httpx.HTTPStatusError as exc:
                if 400 <= exc.response.status_code < 500:
                    log.error(
                        "notification.client_error",
                        status=exc.response.status_code,
                        kind=body["kind"],
                    )
                    return False
                last_exc = exc
            except httpx.TransportError as exc:
                last_exc = exc

            backoff = self._retry_base_seconds * (2 ** attempt)
            log.warning(
                "notification.retry",
                attempt=attempt + 1,
                backoff=backoff,
                error=str(last_exc),
            )
            await asyncio.sleep(backoff)

        log.error("notification.failed", kind=body["kind"], error=str(last_exc))
        return False

    async def _send(self, kind: str, to_email: str, **fields) -> bool:
        body = {"kind": kind, "to": to_email, **fields}
        if self._client is not None:
            return await self._post(self._client, body)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            return await self._post(client, body)

    async def send_invitation_email(
        self,
        to_email: str,
        to_name: str,
        org_name: str,
        from_name: str,
        token: str,
        message: Optional[str] = None,
    ) -> bool:
        return await self._send(
            "invitation",
            to_email,
            to_name=to_name,
            org_name=org_name,
            from_name=from_name,
            link=_link("accept-invitation", token),
            message=message,
        )

    async def send_welcome_email(self, to_email: str, to_name: str, org_name: str) -> bool:
        return await self._send("welcome", to_email, to_name=to_name, org_name=org_name)

    async def send_password_reset_email(self, to_email: str, to_name: str, token: str) -> bool:
        return await self._send(
            "password_reset", to_email, to_name=to_name, link=_link("reset-password", token)
        )

    async def send_email_verification(self, to_email: str, to_name: str, token: str) -> bool:
        return await self._send(
            "email_verification", to_email, to_name=to_name, link=_link("verify-email", token)
        )


def get_notifier() -> NotificationSender:
    """FastAPI dependency returning the configured notification sender."""
    if settings.notification_webhook_url:
        return WebhookNotificationSender(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingNotificationSender()


async def notify(coro, event: str, **context) -> bool:
    """Await a sender call, converting a False result or an exception into a logged warning."""
    try:
        sent = await coro
    except Exception as exc:
        log.warning(event, error=str(exc), **context)
        return False
    if not sent:
        log.warning(event, **context)
    return bool(sent)
