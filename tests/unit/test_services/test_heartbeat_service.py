"""
Tests for HeartbeatService using a mocked database session.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models.heartbeat import HeartbeatPayload
from models.models import Heartbeat
from services.heartbeat_service import HeartbeatService

T0 = datetime(2024, 12, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_session():
    """Create mock database session."""
    session = MagicMock()
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def mock_db(mock_session):
    with patch('services.heartbeat_service.db_manager') as mock_db:
        mock_db.get_session.return_value.__aenter__ = AsyncMock(return_value=mock_session)
        mock_db.get_session.return_value.__aexit__ = AsyncMock(return_value=False)
        yield mock_db


@pytest.fixture
def service():
    return HeartbeatService()


class TestRecordHeartbeat:
    """Test inserting heartbeats."""

    @pytest.mark.asyncio
    async def test_record_heartbeat_maps_payload(self, service, mock_db, mock_session):
        def assign_id():
            mock_session.add.call_args.args[0].id = 17

        mock_session.flush.side_effect = assign_id
        payload = HeartbeatPayload(
            connection_state="up",
            timestamp="2024-12-02T12:00:00Z",
            ipv4="192.0.2.10",
            rate_down=1200,
            uptime_seconds=3600,
        )

        heartbeat_id = await service.record_heartbeat(payload)

        assert heartbeat_id == 17
        stored = mock_session.add.call_args.args[0]
        assert isinstance(stored, Heartbeat)
        assert stored.status == "up"
        assert stored.timestamp == T0
        assert stored.ipv4 == "192.0.2.10"
        assert stored.rate_down == 1200
        assert stored.ipv6 is None
        assert stored.heartbeat_metadata == {"uptime_seconds": 3600}

    @pytest.mark.asyncio
    async def test_record_heartbeat_without_extras_stores_null_metadata(self, service, mock_db, mock_session):
        payload = HeartbeatPayload(connection_state="down", timestamp="2024-12-02T12:00:00Z", note=None)

        await service.record_heartbeat(payload)

        stored = mock_session.add.call_args.args[0]
        assert stored.heartbeat_metadata is None

    @pytest.mark.asyncio
    async def test_record_heartbeat_rejects_bad_timestamp(self, service, mock_db, mock_session):
        payload = HeartbeatPayload(connection_state="up", timestamp="yesterday")

        with pytest.raises(ValueError):
            await service.record_heartbeat(payload)

        mock_session.add.assert_not_called()


class TestQueries:
    """Test read paths."""

    @pytest.mark.asyncio
    async def test_get_last_heartbeat(self, service, mock_db, mock_session):
        heartbeat = Heartbeat(id=3, status="up", timestamp=T0)
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = heartbeat
        mock_session.execute.return_value = mock_result

        assert await service.get_last_heartbeat() is heartbeat

    @pytest.mark.asyncio
    async def test_get_all_heartbeats(self, service, mock_db, mock_session):
        heartbeats = [Heartbeat(id=1, status="up", timestamp=T0), Heartbeat(id=2, status="up", timestamp=T0)]
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = heartbeats
        mock_session.execute.return_value = mock_result

        assert await service.get_all_heartbeats() == heartbeats

    @pytest.mark.asyncio
    async def test_cleanup_old_heartbeats_returns_rowcount(self, service, mock_db, mock_session):
        mock_session.execute.return_value = MagicMock(rowcount=5)

        assert await service.cleanup_old_heartbeats(days_to_keep=30) == 5
        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_heartbeats_in_range(self, service, mock_db, mock_session):
        heartbeats = [Heartbeat(id=1, status="up", timestamp=T0)]
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = heartbeats
        mock_session.execute.return_value = mock_result

        assert await service.get_heartbeats_in_range(T0, T0 + timedelta(hours=1)) == heartbeats


class TestShouldTriggerDowntime:
    """Test the staleness predicate."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("elapsed_ms,expected", [
        (299_999, False),
        (300_000, False),
        (300_001, True),
    ])
    async def test_threshold(self, service, elapsed_ms, expected):
        with patch.object(service, "get_last_heartbeat", AsyncMock(return_value=SimpleNamespace(timestamp=T0))):
            now = T0 + timedelta(milliseconds=elapsed_ms)

            assert await service.should_trigger_downtime(300_000, now=now) is expected

    @pytest.mark.asyncio
    async def test_no_heartbeat(self, service):
        with patch.object(service, "get_last_heartbeat", AsyncMock(return_value=None)):
            assert await service.should_trigger_downtime(300_000) is False
