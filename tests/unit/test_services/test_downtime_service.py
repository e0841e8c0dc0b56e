"""
Tests for DowntimeService using a mocked database session.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models.models import DowntimeEvent
from services.downtime_service import DowntimeEventNotFoundError, DowntimeService

T0 = datetime(2024, 12, 2, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_session():
    """Create mock database session."""
    session = MagicMock()
    session.add = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.get = AsyncMock()
    return session


@pytest.fixture
def mock_db(mock_session):
    with patch('services.downtime_service.db_manager') as mock_db:
        mock_db.get_session.return_value.__aenter__ = AsyncMock(return_value=mock_session)
        mock_db.get_session.return_value.__aexit__ = AsyncMock(return_value=False)
        yield mock_db


@pytest.fixture
def service():
    return DowntimeService()


class TestCreateDowntimeEvent:
    """Test opening events."""

    @pytest.mark.asyncio
    async def test_creates_active_event(self, service, mock_db, mock_session):
        def assign_id():
            mock_session.add.call_args.args[0].id = 4

        mock_session.flush.side_effect = assign_id

        event_id = await service.create_downtime_event(T0, "Automatically detected downtime")

        assert event_id == 4
        event = mock_session.add.call_args.args[0]
        assert isinstance(event, DowntimeEvent)
        assert event.started_at == T0
        assert event.is_active is True
        assert event.notes == "Automatically detected downtime"
        assert event.ended_at is None


class TestEndDowntimeEvent:
    """Test closing events."""

    @pytest.mark.asyncio
    async def test_sets_end_and_whole_second_duration(self, service, mock_db, mock_session):
        event = DowntimeEvent(id=3, started_at=T0, is_active=True)
        mock_session.get.return_value = event
        ended_at = T0 + timedelta(seconds=125, milliseconds=999)

        closed = await service.end_downtime_event(3, ended_at)

        assert closed is event
        assert closed.ended_at == ended_at
        assert closed.duration == 125
        assert closed.is_active is False
        mock_session.get.assert_awaited_once_with(DowntimeEvent, 3)

    @pytest.mark.asyncio
    async def test_unknown_event_raises(self, service, mock_db, mock_session):
        mock_session.get.return_value = None

        with pytest.raises(DowntimeEventNotFoundError, match="Downtime event with ID 99 not found"):
            await service.end_downtime_event(99, T0)


class TestQueries:
    """Test read paths."""

    @pytest.mark.asyncio
    async def test_get_active_downtime_event(self, service, mock_db, mock_session):
        event = DowntimeEvent(id=1, started_at=T0, is_active=True)
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = event
        mock_session.execute.return_value = mock_result

        assert await service.get_active_downtime_event() is event

    @pytest.mark.asyncio
    async def test_get_active_downtime_event_none(self, service, mock_db, mock_session):
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = mock_result

        assert await service.get_active_downtime_event() is None

    @pytest.mark.asyncio
    async def test_get_all_downtime_events(self, service, mock_db, mock_session):
        events = [DowntimeEvent(id=2, started_at=T0), DowntimeEvent(id=1, started_at=T0)]
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = events
        mock_session.execute.return_value = mock_result

        assert await service.get_all_downtime_events(limit=10) == events

    @pytest.mark.asyncio
    async def test_get_total_downtime_ignores_open_events(self, service):
        events = [SimpleNamespace(duration=60), SimpleNamespace(duration=None), SimpleNamespace(duration=30)]

        with patch.object(service, "get_downtime_events_in_range", AsyncMock(return_value=events)):
            total = await service.get_total_downtime(T0, T0 + timedelta(days=1))

        assert total == 90

    @pytest.mark.asyncio
    async def test_get_downtime_events_in_range(self, service, mock_db, mock_session):
        events = [DowntimeEvent(id=1, started_at=T0)]
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = events
        mock_session.execute.return_value = mock_result

        assert await service.get_downtime_events_in_range(T0, T0 + timedelta(hours=1)) == events
        statement = mock_session.execute.call_args.args[0]
        assert "downtime_events.ended_at BETWEEN" in str(statement)
