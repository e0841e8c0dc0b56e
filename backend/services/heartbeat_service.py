"""Storage of heartbeats sent by the monitored appliance."""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, desc, select

from database.database import db_manager
from models.heartbeat import HeartbeatPayload
from models.models import Heartbeat
from utils.logging import get_logger
from utils.timing import elapsed_ms, utcnow

logger = get_logger("heartbeat-service")


class HeartbeatService:
    """Stores heartbeats and answers staleness questions about them."""

    async def record_heartbeat(self, payload: HeartbeatPayload) -> int:
        """Insert a heartbeat and return its id.

        Raises:
            ValueError: If the payload timestamp is not valid ISO-8601
        """
        heartbeat = Heartbeat(
            status=payload.connection_state,
            timestamp=payload.parsed_timestamp(),
            heartbeat_metadata=payload.extra_metadata(),
            **payload.telemetry(),
        )
        async with db_manager.get_session() as session:
            session.add(heartbeat)
            await session.flush()
            heartbeat_id = heartbeat.id

        logger.debug(
            f"Stored heartbeat {heartbeat_id}",
            extra={"data": {"heartbeat_id": heartbeat_id, "status": payload.connection_state}}
        )
        return heartbeat_id

    async def get_last_heartbeat(self) -> Optional[Heartbeat]:
        async with db_manager.get_session() as session:
            result = await session.execute(
                select(Heartbeat).order_by(desc(Heartbeat.timestamp)).limit(1)
            )
            return result.scalar_one_or_none()

    async def should_trigger_downtime(self, timeout_ms: int, now: Optional[datetime] = None) -> bool:
        """True when the last heartbeat is older than timeout_ms. False when none exists."""
        last_heartbeat = await self.get_last_heartbeat()
        if last_heartbeat is None:
            return False

        return elapsed_ms(last_heartbeat.timestamp, now or utcnow()) > timeout_ms

    async def get_heartbeats_in_range(self, start: datetime, end: datetime) -> List[Heartbeat]:
        async with db_manager.get_session() as session:
            result = await session.execute(
                select(Heartbeat)
                .where(Heartbeat.timestamp.between(start, end))
                .order_by(Heartbeat.timestamp)
            )
            return list(result.scalars().all())

    async def get_all_heartbeats(self) -> List[Heartbeat]:
        async with db_manager.get_session() as session:
            result = await session.execute(select(Heartbeat).order_by(Heartbeat.timestamp))
            return list(result.scalars().all())

    async def cleanup_old_heartbeats(self, days_to_keep: int = 30) -> int:
        """Delete heartbeats older than days_to_keep. Returns the number removed."""
        cutoff = utcnow() - timedelta(days=days_to_keep)
        async with db_manager.get_session() as session:
            result = await session.execute(delete(Heartbeat).where(Heartbeat.timestamp < cutoff))
            deleted = result.rowcount or 0

        logger.info(
            f"Removed {deleted} heartbeats older than {days_to_keep} days",
            extra={"data": {"cutoff": cutoff.isoformat(), "deleted": deleted}}
        )
        return deleted


# Global heartbeat service instance
heartbeat_service = HeartbeatService()
