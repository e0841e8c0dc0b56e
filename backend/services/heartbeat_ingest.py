"""Heartbeat write path: persist the heartbeat, then close an open outage on recovery."""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from models.heartbeat import HeartbeatPayload
from models.models import DowntimeEvent
from services.downtime_monitor import DowntimeMonitor, DowntimeState
from services.notification_service import NotificationSink, notify_safely
from utils.logging import get_logger, log_state_transition
from utils.timing import ensure_utc, utcnow

logger = get_logger("heartbeat-ingest")


class HeartbeatWriter(Protocol):
    async def record_heartbeat(self, payload: HeartbeatPayload) -> int:
        ...


class DowntimeCloser(Protocol):
    async def get_active_downtime_event(self) -> Optional[DowntimeEvent]:
        ...

    async def end_downtime_event(self, event_id: int, ended_at: datetime) -> DowntimeEvent:
        ...


@dataclass
class HeartbeatRecordResult:
    """Outcome of one heartbeat write."""
    heartbeat_id: int
    closed_event: Optional[DowntimeEvent] = None

    @property
    def recovered(self) -> bool:
        return self.closed_event is not None


class HeartbeatIngestService:
    """Records heartbeats and reconciles the open downtime window."""

    def __init__(
        self,
        heartbeat_store: HeartbeatWriter,
        downtime_store: DowntimeCloser,
        monitor: DowntimeMonitor,
        notification_sink: NotificationSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.heartbeat_store = heartbeat_store
        self.downtime_store = downtime_store
        self.monitor = monitor
        self.notification_sink = notification_sink
        self._clock = clock

    async def record_heartbeat_and_reconcile(
        self, payload: HeartbeatPayload, now: Optional[datetime] = None
    ) -> HeartbeatRecordResult:
        """Store the heartbeat; close the active downtime if the state reports recovery.

        Storage errors propagate to the caller. The recovery notification is
        best-effort and never undoes the close.
        """
        heartbeat_id = await self.heartbeat_store.record_heartbeat(payload)
        result = HeartbeatRecordResult(heartbeat_id=heartbeat_id)

        active_downtime = await self.downtime_store.get_active_downtime_event()
        if active_downtime is None or not payload.state.is_recovered:
            return result

        ended_at = now or self._clock()
        started_at = ensure_utc(active_downtime.started_at)
        closed = await self.downtime_store.end_downtime_event(active_downtime.id, ended_at)
        self.monitor.mark_downtime_ended(active_downtime.id)
        result.closed_event = closed

        log_state_transition(logger, DowntimeState.HEALTHY.value, active_downtime.id, duration=closed.duration)

        await notify_safely(
            self.notification_sink.recovered(active_downtime.id, started_at, ended_at),
            "recovered",
        )
        return result
