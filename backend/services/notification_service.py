"""
Notification Service

Outbound notifications for downtime transitions. The downtime monitor and the
heartbeat ingest only see the NotificationSink protocol; the concrete channel
(Telegram, or nothing at all) is picked from settings at startup.

Delivery is best-effort: failures are logged and never raised to callers.
"""

from datetime import datetime
from typing import Awaitable, Optional, Protocol, runtime_checkable

import httpx

from config import Settings, settings
from utils.logging import get_logger
from utils.timing import elapsed_ms, ensure_utc, floor_minutes, floor_seconds, format_duration, utcnow

logger = get_logger("notifications")


@runtime_checkable
class NotificationSink(Protocol):
    """Channel-agnostic notification interface."""

    @property
    def is_enabled(self) -> bool:
        ...

    async def downtime_detected(self, event_id: int, started_at: datetime, timeout_ms: int) -> None:
        ...

    async def downtime_confirmed(self, event_id: int, started_at: datetime, confirmation_delay_ms: int) -> None:
        ...

    async def recovered(self, event_id: int, started_at: datetime, ended_at: datetime) -> None:
        ...

    async def startup(self) -> None:
        ...


class DisabledNotificationSink:
    """Sink used when no channel is configured. Every call is a no-op."""

    @property
    def is_enabled(self) -> bool:
        return False

    async def downtime_detected(self, event_id: int, started_at: datetime, timeout_ms: int) -> None:
        return None

    async def downtime_confirmed(self, event_id: int, started_at: datetime, confirmation_delay_ms: int) -> None:
        return None

    async def recovered(self, event_id: int, started_at: datetime, ended_at: datetime) -> None:
        return None

    async def startup(self) -> None:
        return None


def _iso(value: datetime) -> str:
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_detected_message(event_id: int, started_at: datetime, timeout_ms: int) -> str:
    return "\n".join([
        "🔴 *Downtime Detected*",
        "",
        f"Started: {_iso(started_at)}",
        f"ID: {event_id}",
        "",
        f"No heartbeat received for {floor_minutes(timeout_ms)} minutes.",
    ])


def build_confirmed_message(event_id: int, started_at: datetime, confirmation_delay_ms: int, now: datetime) -> str:
    duration_minutes = floor_minutes(elapsed_ms(started_at, now))
    return "\n".join([
        "⚠️ *Downtime Confirmed*",
        "",
        f"Started: {_iso(started_at)}",
        f"Duration: {duration_minutes} minutes",
        f"ID: {event_id}",
        "",
        f"Service has been down for over {floor_minutes(confirmation_delay_ms)} minutes.",
    ])


def build_recovered_message(event_id: int, started_at: datetime, ended_at: datetime) -> str:
    duration_seconds = floor_seconds(elapsed_ms(started_at, ended_at))
    return "\n".join([
        "✅ *Service Recovered*",
        "",
        f"Downtime started: {_iso(started_at)}",
        f"Recovered at: {_iso(ended_at)}",
        f"Total duration: {format_duration(duration_seconds)}",
        f"ID: {event_id}",
    ])


def build_startup_message(now: datetime) -> str:
    return "\n".join([
        "🟢 *Heartbeat watcher started*",
        "",
        f"Server time: {_iso(now)}",
    ])


class TelegramNotificationSink:
    """Sends Markdown messages through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._endpoint = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout
        self._transport = transport

    @property
    def is_enabled(self) -> bool:
        return True

    async def _send_message(self, text: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._endpoint,
                    json={"chat_id": self._chat_id, "text": text, "parse_mode": "Markdown"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            # The exception text can embed the request URL, which carries the bot token
            logger.error(
                "Failed to send Telegram message",
                extra={"data": {"exception_type": type(e).__name__}}
            )

    async def downtime_detected(self, event_id: int, started_at: datetime, timeout_ms: int) -> None:
        await self._send_message(build_detected_message(event_id, started_at, timeout_ms))

    async def downtime_confirmed(self, event_id: int, started_at: datetime, confirmation_delay_ms: int) -> None:
        await self._send_message(build_confirmed_message(event_id, started_at, confirmation_delay_ms, utcnow()))

    async def recovered(self, event_id: int, started_at: datetime, ended_at: datetime) -> None:
        await self._send_message(build_recovered_message(event_id, started_at, ended_at))

    async def startup(self) -> None:
        await self._send_message(build_startup_message(utcnow()))


def create_notification_sink(config: Settings = settings) -> NotificationSink:
    """Telegram sink when both credentials are configured, otherwise a disabled sink."""
    if not config.telegram_enabled:
        logger.warning("Telegram notifications disabled: TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID not configured")
        return DisabledNotificationSink()

    return TelegramNotificationSink(
        bot_token=config.TELEGRAM_BOT_TOKEN.get_secret_value(),
        chat_id=config.TELEGRAM_CHAT_ID,
        api_url=config.TELEGRAM_API_URL,
        timeout=config.NOTIFICATION_TIMEOUT,
    )


async def notify_safely(notification: Awaitable[None], event: str) -> bool:
    """Await a sink call; log and swallow any delivery failure.

    Returns:
        True when the call completed without raising
    """
    try:
        await notification
        return True
    except Exception as e:
        logger.error(
            f"Notification '{event}' failed: {e}",
            exc_info=True,
            extra={"data": {"event": event}}
        )
        return False
