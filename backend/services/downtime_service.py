"""
Downtime Event Service

Tracks outage windows. At most one event is active at a time; callers check
get_active_downtime_event() before creating a new one.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, or_, select

from database.database import db_manager
from models.models import DowntimeEvent
from utils.logging import get_logger
from utils.timing import elapsed_ms, floor_seconds

logger = get_logger("downtime-service")


class DowntimeEventNotFoundError(Exception):
    """Raised when closing a downtime event that does not exist."""

    def __init__(self, event_id: int):
        super().__init__(f"Downtime event with ID {event_id} not found")
        self.event_id = event_id


class DowntimeService:
    """Creates, closes and queries downtime events."""

    async def create_downtime_event(self, started_at: datetime, notes: Optional[str] = None) -> int:
        """Open a new downtime event and return its id."""
        event = DowntimeEvent(started_at=started_at, is_active=True, notes=notes)
        async with db_manager.get_session() as session:
            session.add(event)
            await session.flush()
            event_id = event.id

        logger.debug(f"Opened downtime event {event_id}", extra={"data": {"started_at": started_at.isoformat()}})
        return event_id

    async def end_downtime_event(self, event_id: int, ended_at: datetime) -> DowntimeEvent:
        """Close an event, storing ended_at and the duration in whole seconds.

        Raises:
            DowntimeEventNotFoundError: If no event has this id
        """
        async with db_manager.get_session() as session:
            event = await session.get(DowntimeEvent, event_id)
            if event is None:
                raise DowntimeEventNotFoundError(event_id)

            event.ended_at = ended_at
            event.duration = floor_seconds(elapsed_ms(event.started_at, ended_at))
            event.is_active = False

        logger.debug(
            f"Closed downtime event {event_id}",
            extra={"data": {"ended_at": ended_at.isoformat(), "duration": event.duration}}
        )
        return event

    async def get_active_downtime_event(self) -> Optional[DowntimeEvent]:
        """Most recently started active event, if any."""
        async with db_manager.get_session() as session:
            result = await session.execute(
                select(DowntimeEvent)
                .where(DowntimeEvent.is_active.is_(True))
                .order_by(desc(DowntimeEvent.started_at))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_all_downtime_events(self, limit: int = 100) -> List[DowntimeEvent]:
        async with db_manager.get_session() as session:
            result = await session.execute(
                select(DowntimeEvent).order_by(desc(DowntimeEvent.started_at)).limit(limit)
            )
            return list(result.scalars().all())

    async def get_downtime_events_in_range(self, start: datetime, end: datetime) -> List[DowntimeEvent]:
        """Events that started or ended inside [start, end], newest first."""
        async with db_manager.get_session() as session:
            result = await session.execute(
                select(DowntimeEvent)
                .where(
                    or_(
                        DowntimeEvent.started_at.between(start, end),
                        DowntimeEvent.ended_at.between(start, end),
                    )
                )
                .order_by(desc(DowntimeEvent.started_at))
            )
            return list(result.scalars().all())

    async def get_total_downtime(self, start: datetime, end: datetime) -> int:
        """Sum of closed event durations in the range, in seconds."""
        events = await self.get_downtime_events_in_range(start, end)
        return sum(event.duration or 0 for event in events)


# Global downtime service instance
downtime_service = DowntimeService()
