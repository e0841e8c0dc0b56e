"""
Heartbeat Watcher Database Models

- Heartbeat: one accepted heartbeat write, never mutated
- DowntimeEvent: one observed outage window
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Heartbeat(Base):
    """Heartbeat reported by the monitored appliance."""
    __tablename__ = 'heartbeats'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(255), nullable=False)  # free-form connection state
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Telemetry
    ipv4: Mapped[Optional[str]] = mapped_column(String(45))
    ipv6: Mapped[Optional[str]] = mapped_column(String(45))
    media_state: Mapped[Optional[str]] = mapped_column(String(50))
    connection_type: Mapped[Optional[str]] = mapped_column(String(50))
    bandwidth_down: Mapped[Optional[int]] = mapped_column(BigInteger)
    bandwidth_up: Mapped[Optional[int]] = mapped_column(BigInteger)
    rate_down: Mapped[Optional[int]] = mapped_column(BigInteger)
    rate_up: Mapped[Optional[int]] = mapped_column(BigInteger)
    bytes_down: Mapped[Optional[int]] = mapped_column(BigInteger)
    bytes_up: Mapped[Optional[int]] = mapped_column(BigInteger)

    # Any payload field without a dedicated column
    heartbeat_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON().with_variant(JSONB, "postgresql"), nullable=True
    )

    __table_args__ = (
        Index('idx_heartbeats_timestamp', 'timestamp'),
    )

    def __repr__(self):
        return f"<Heartbeat(id={self.id}, status={self.status}, timestamp={self.timestamp})>"


class DowntimeEvent(Base):
    """Outage window opened by the downtime monitor."""
    __tablename__ = 'downtime_events'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration: Mapped[Optional[int]] = mapped_column(Integer)  # seconds
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index('idx_downtime_active_started', 'is_active', 'started_at'),
    )

    def __repr__(self):
        return f"<DowntimeEvent(id={self.id}, started_at={self.started_at}, is_active={self.is_active})>"
