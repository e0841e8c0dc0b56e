"""
Downtime Monitor

Background service that periodically checks heartbeat freshness and drives
the downtime lifecycle:

    HEALTHY -> DOWN_UNCONFIRMED   last heartbeat older than the heartbeat timeout
    DOWN_UNCONFIRMED -> DOWN_CONFIRMED   outage older than the confirmation delay
    DOWN_* -> HEALTHY   a recovered heartbeat arrives (see heartbeat_ingest)

Ticks are re-armed only after the previous tick finished, so a slow database
can never produce overlapping checks. The set of confirmed event ids lives in
process memory and is therefore only valid for a single instance.
"""

import asyncio
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol, Set

from models.models import DowntimeEvent, Heartbeat
from services.notification_service import NotificationSink, notify_safely
from utils.logging import get_logger, log_state_transition
from utils.timing import elapsed_ms, ensure_utc, floor_minutes, utcnow

logger = get_logger("downtime-monitor")

AUTO_DETECTED_NOTE = "Automatically detected downtime"


class DowntimeState(str, Enum):
    """Connection state as seen by the monitor."""
    HEALTHY = "healthy"
    DOWN_UNCONFIRMED = "down_unconfirmed"
    DOWN_CONFIRMED = "down_confirmed"


class HeartbeatStore(Protocol):
    async def get_last_heartbeat(self) -> Optional[Heartbeat]:
        ...


class DowntimeStore(Protocol):
    async def get_active_downtime_event(self) -> Optional[DowntimeEvent]:
        ...

    async def create_downtime_event(self, started_at: datetime, notes: Optional[str] = None) -> int:
        ...


class DowntimeMonitor:
    """Periodically checks for downtime conditions and sends notifications."""

    def __init__(
        self,
        heartbeat_store: HeartbeatStore,
        downtime_store: DowntimeStore,
        notification_sink: NotificationSink,
        heartbeat_timeout_ms: int = 300_000,
        check_interval_ms: int = 60_000,
        confirmation_delay_ms: int = 1_800_000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.heartbeat_store = heartbeat_store
        self.downtime_store = downtime_store
        self.notification_sink = notification_sink
        self.heartbeat_timeout_ms = heartbeat_timeout_ms
        self.check_interval_ms = check_interval_ms
        self.confirmation_delay_ms = confirmation_delay_ms
        self._clock = clock

        self.confirmed_downtime_ids: Set[int] = set()
        self.is_running = False
        self.monitor_task: Optional[asyncio.Task] = None
        self._tick_in_progress = False

    def start(self) -> None:
        """Start the monitoring loop. The first check runs immediately."""
        if self.is_running:
            logger.warning("Downtime monitor already running")
            return

        self.is_running = True
        self.monitor_task = asyncio.create_task(self._monitor_loop())
        logger.info(
            "Downtime monitor started",
            extra={"data": {"check_interval_seconds": self.check_interval_ms / 1000}}
        )

    async def stop(self) -> None:
        """Stop the loop. A check already in flight finishes; no further check is scheduled."""
        if not self.monitor_task:
            return

        self.is_running = False
        task, self.monitor_task = self.monitor_task, None

        # Only interrupt the sleep between ticks, never a running check
        if not self._tick_in_progress:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.info("Downtime monitor stopped")

    async def _monitor_loop(self) -> None:
        while self.is_running:
            self._tick_in_progress = True
            try:
                await self.check_downtime()
            finally:
                self._tick_in_progress = False

            if not self.is_running:
                break
            await asyncio.sleep(self.check_interval_ms / 1000)

    async def check_downtime(self) -> None:
        """Run one pass. Errors are logged and never escape."""
        try:
            now = self._clock()
            active_downtime = await self.downtime_store.get_active_downtime_event()

            if active_downtime is not None:
                await self._check_confirmation(active_downtime, now)
            else:
                await self._check_staleness(now)
        except Exception as e:
            logger.error(f"Error in downtime check: {e}", exc_info=True)

    async def _check_staleness(self, now: datetime) -> None:
        last_heartbeat = await self.heartbeat_store.get_last_heartbeat()
        if last_heartbeat is None:
            return

        if elapsed_ms(last_heartbeat.timestamp, now) <= self.heartbeat_timeout_ms:
            return

        # The outage began when the heartbeat became overdue, not when it was noticed
        started_at = ensure_utc(last_heartbeat.timestamp) + timedelta(milliseconds=self.heartbeat_timeout_ms)
        downtime_id = await self.downtime_store.create_downtime_event(started_at, AUTO_DETECTED_NOTE)

        log_state_transition(logger, DowntimeState.DOWN_UNCONFIRMED.value, downtime_id, started_at=started_at.isoformat())

        await notify_safely(
            self.notification_sink.downtime_detected(downtime_id, started_at, self.heartbeat_timeout_ms),
            "downtime_detected",
        )

    async def _check_confirmation(self, downtime: DowntimeEvent, now: datetime) -> None:
        if downtime.id in self.confirmed_downtime_ids:
            return

        time_since_start = elapsed_ms(downtime.started_at, now)
        if time_since_start < self.confirmation_delay_ms:
            return

        # Marked before sending so a slow or failing sink cannot cause a resend
        self.confirmed_downtime_ids.add(downtime.id)

        log_state_transition(
            logger, DowntimeState.DOWN_CONFIRMED.value, downtime.id, duration_minutes=floor_minutes(time_since_start)
        )

        await notify_safely(
            self.notification_sink.downtime_confirmed(downtime.id, ensure_utc(downtime.started_at), self.confirmation_delay_ms),
            "downtime_confirmed",
        )

    def mark_downtime_ended(self, downtime_id: int) -> None:
        """Forget the confirmation mark of a closed event."""
        self.confirmed_downtime_ids.discard(downtime_id)

    def current_state(self, active_downtime: Optional[DowntimeEvent]) -> DowntimeState:
        if active_downtime is None:
            return DowntimeState.HEALTHY
        if active_downtime.id in self.confirmed_downtime_ids:
            return DowntimeState.DOWN_CONFIRMED
        return DowntimeState.DOWN_UNCONFIRMED
