"""Test fixtures — in-memory database, in-memory store, HTTP client.

Storage tests run against SQLite in memory (aiosqlite) with the schema
created from the ORM models, so the suite needs neither PostgreSQL nor
an MQTT broker. Each test gets a fresh database.

Dispatcher and connection tests use InMemoryStore, a plain-Python
TelemetryStore that records every call.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dronebridge.bus.messages import StateUpdate, TrackUpdate
from dronebridge.bus.topics import MessageClass
from dronebridge.db.engine import get_db
from dronebridge.db.models import Base
from dronebridge.main import app
from dronebridge.realtime.hub import BroadcastHub
from dronebridge.services.errors import EntityNotFound

TEST_DB_URL = "sqlite+aiosqlite://"


class InMemoryStore:
    """TelemetryStore double with the same append semantics as the SQL one."""

    def __init__(self):
        self.tracks: dict[str, dict] = {}
        self.flights: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None

    def add_track(self, entity_id: str) -> dict:
        self.tracks[entity_id] = {"coordinates": [], "total_points": 0, "last_update": None}
        return self.tracks[entity_id]

    def add_flight(self, entity_id: str) -> dict:
        self.flights[entity_id] = {name: [] for name in StateUpdate.model_fields}
        return self.flights[entity_id]

    async def exists(self, message_class: MessageClass, entity_id: str) -> bool:
        self.calls.append(("exists", message_class, entity_id))
        records = self.tracks if message_class is MessageClass.LOCATION else self.flights
        return entity_id in records

    async def append_track(self, entity_id: str, update: TrackUpdate) -> None:
        self.calls.append(("append_track", entity_id, update.pairs))
        if self.fail_with is not None:
            raise self.fail_with
        if entity_id not in self.tracks:
            raise EntityNotFound("Track", entity_id)
        record = self.tracks[entity_id]
        record["coordinates"].extend(update.pairs)
        if update.pairs:
            record["total_points"] += 1
        record["last_update"] = datetime.now(timezone.utc)

    async def append_state(self, entity_id: str, update: StateUpdate) -> None:
        self.calls.append(("append_state", entity_id, update))
        if self.fail_with is not None:
            raise self.fail_with
        if entity_id not in self.flights:
            raise EntityNotFound("Flight", entity_id)
        for name, value in update.model_dump().items():
            self.flights[entity_id][name].append(value)

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "exists"]


@pytest.fixture()
def memory_store():
    return InMemoryStore()


@pytest.fixture()
def hub():
    return BroadcastHub(capacity=100)


@pytest_asyncio.fixture()
async def session_factory():
    """Fresh in-memory database with all tables created."""
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(session_factory, hub):
    """HTTP client with get_db pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.hub = hub

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
