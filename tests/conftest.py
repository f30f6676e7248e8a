import pytest
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from shorturls.config import Settings
from shorturls.main import create_app


class FakeClock:
    """Manually advanced UTC clock for expiry tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingEvents:
    """Stands in for EventLogger and keeps every (level, message) it was given."""

    def __init__(self):
        self.events = []

    def log(self, stack, level, component, message):
        self.events.append((level, message))

    @property
    def levels(self):
        return [level for level, _ in self.events]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        LOG_SINK_ENABLED=False,
        GEO_LOOKUP_ENABLED=False,
        ACCESS_LOG_PATH=str(tmp_path / "logs.txt"),
        BASE_URL=None,
    )


@pytest.fixture
def app(settings):
    return create_app(settings, geo_lookup=lambda ip: "IN")


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    # ASGITransport does not run the lifespan; the event worker and access
    # log flusher are exercised directly in the unit tests.
    async with ASGITransport(app=app) as transport:
        async with AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
