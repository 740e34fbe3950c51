"""Shared pytest fixtures: in-memory storage, a controllable clock, and a test app."""

from __future__ import annotations
from datetime import datetime, timedelta, timezone

import pytest

from plantcare import create_app
from plantcare.services.assistant import CareAssistant
from plantcare.services.notifications import ConversationLog
from plantcare.services.plants import PlantStore
from plantcare.services.reminders import ScheduleManager
from plantcare.services.sqlite_backend import SQLiteBackend


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def backend():
    db = SQLiteBackend(":memory:")
    yield db
    db.close()


@pytest.fixture
def store(backend, clock):
    return PlantStore(backend, clock=clock)


@pytest.fixture
def schedule(backend, clock):
    return ScheduleManager(backend, clock=clock)


@pytest.fixture
def conversation(schedule):
    log = ConversationLog(max_messages=50)
    schedule.add_listener(log.append_reminder)
    return log


@pytest.fixture
def assistant(store, schedule, conversation):
    return CareAssistant(store, schedule, conversation)


@pytest.fixture
def fernie(store):
    return store.add_plant({"name": "Fernie", "type": "Boston Fern", "water_frequency_days": 3})


@pytest.fixture
def app():
    return create_app("plantcare.config.TestConfig")


@pytest.fixture
def client(app):
    return app.test_client()
