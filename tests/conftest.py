"""
Pytest fixtures for the scheduling engine.

Provides:
- A fixed clock (Monday 2026-03-02 08:00 UTC) and a time helper
- Existing-event factory
- In-memory calendar store and a scheduler wired to it
"""

from datetime import datetime, timedelta, timezone

import pytest

from config.settings import Config
from src.ai_agent.mock_llm_client import MockLLMClient
from src.calendar.mock_calendar_manager import InMemoryCalendarManager
from src.scheduler.models import ExistingEvent, RankingOptions, WorkingHours, WorkspaceScope
from src.scheduler.smart_scheduler import SmartScheduler

MONDAY = datetime(2026, 3, 2, tzinfo=timezone.utc)
OWNER = "owner@example.com"


class ConfigForTests(Config):
    """Configuration pinned so environment overrides do not leak into tests"""
    AI_PROVIDER = "mock"
    DEFAULT_MODEL = "gpt-4o-mini"
    TIMEZONE = "UTC"
    CALENDAR_FETCH_TIMEOUT = 2.0
    WORKING_HOURS_START = "09:00"
    WORKING_HOURS_END = "17:00"
    WORKING_DAYS = [1, 2, 3, 4, 5]
    MIN_EVENT_BUFFER_MINUTES = 15


def at(hour: int, minute: int = 0, day: int = 0) -> datetime:
    """Datetime `day` days after Monday 2026-03-02, in UTC"""
    return MONDAY + timedelta(days=day, hours=hour, minutes=minute)


# =============================================================================
# TIME FIXTURES
# =============================================================================

@pytest.fixture
def now():
    """Monday 08:00 UTC, one hour before the working day starts."""
    return at(8)


@pytest.fixture
def working_hours():
    return WorkingHours(start="09:00", end="17:00", timezone="UTC", working_days=(1, 2, 3, 4, 5))


@pytest.fixture
def options():
    return RankingOptions()


# =============================================================================
# EVENT FIXTURES
# =============================================================================

@pytest.fixture
def make_event():
    """Factory for existing events: make_event("e1", 10, 11, day=0, priority="low")."""
    def _make(event_id, start_hour, end_hour, day=0, owner=OWNER, start_minute=0, end_minute=0, **kwargs):
        return ExistingEvent(
            id=event_id,
            owner=owner,
            start=at(start_hour, start_minute, day),
            end=at(end_hour, end_minute, day),
            title=kwargs.pop("title", f"Event {event_id}"),
            **kwargs,
        )
    return _make


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def scope():
    return WorkspaceScope(user_id=OWNER, workspace_id=None)


@pytest.fixture
def store():
    return InMemoryCalendarManager()


@pytest.fixture
def scheduler(store, now):
    return SmartScheduler(
        calendar_store=store,
        intent_source=MockLLMClient(config=ConfigForTests()),
        config=ConfigForTests(),
        clock=lambda: now,
    )
