"""
Test fixtures and configuration for the integration monitor.
"""

import random
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from integration_monitor.core.config import Settings
from integration_monitor.main import create_app
from integration_monitor.schemas.events import CreateEventInput, EventError
from integration_monitor.services.event_store import EventStore
from integration_monitor.services.sync_service import SyncService
from integration_monitor.services.sync_store import SyncStore

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "integration: marks tests that go through the HTTP layer")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


class FakeClock:
    """Deterministic, manually advanced UTC clock"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FixedRandom(random.Random):
    """
    Random source whose ``random()`` always returns ``value``. Integer draws
    (randrange, choice, sample) still come from the seeded generator.
    """

    def __init__(self, value: float, seed: int = 7):
        super().__init__(seed)
        self.value = value

    def random(self):
        return self.value

    # overriding random() alone would route integer draws through it
    def getrandbits(self, k):
        return super().getrandbits(k)


def success_input(integration="procore", event_type="project.sync", **payload):
    return CreateEventInput(integration=integration, event_type=event_type, status="success",
                            payload=payload)


def failure_input(message="Something went wrong", code=None, integration="procore",
                  event_type="project.sync", context=None):
    return CreateEventInput(
        integration=integration,
        event_type=event_type,
        status="failure",
        error=EventError(message=message, code=code, context=context),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_store(clock):
    return EventStore(max_events=1000, default_limit=50, clock=clock)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def sync_store(clock):
    return SyncStore(clock=clock)


@pytest.fixture
def sync_service(sync_store, rng, clock):
    return SyncService(sync_store, rng=rng, clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        LOG_LEVEL="WARNING",
        OPENAI_API_KEY=None,
        SYNC_GENERATE_ON_STARTUP=False,
        SYNC_RANDOM_SEED=42,
        PROMETHEUS_ENABLED=True,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    return TestClient(app)
