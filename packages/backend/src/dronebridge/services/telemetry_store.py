"""Telemetry store — the persistence side of the dispatcher.

The dispatcher depends only on the TelemetryStore protocol. The SQL
implementation opens a fresh session per call and delegates to the
record services; serialization between concurrent writers is left to
the database.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dronebridge.bus.messages import StateUpdate, TrackUpdate
from dronebridge.bus.topics import MessageClass
from dronebridge.services.flight_service import FlightService
from dronebridge.services.track_service import TrackService


class TelemetryStore(Protocol):
    async def exists(self, message_class: MessageClass, entity_id: str) -> bool:
        """Whether the record a message of this class targets exists."""
        ...

    async def append_track(self, entity_id: str, update: TrackUpdate) -> None: ...

    async def append_state(self, entity_id: str, update: StateUpdate) -> None: ...


class SqlTelemetryStore:
    """TelemetryStore over SQLAlchemy async sessions.

    Location messages target ShipTrack records, state messages target
    Flight records. Errors (InvalidEntityId, EntityNotFound,
    SQLAlchemyError) propagate to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def exists(self, message_class: MessageClass, entity_id: str) -> bool:
        async with self._session_factory() as db:
            if message_class is MessageClass.LOCATION:
                return await TrackService(db).exists(entity_id)
            return await FlightService(db).exists(entity_id)

    async def append_track(self, entity_id: str, update: TrackUpdate) -> None:
        async with self._session_factory() as db:
            await TrackService(db).append_coordinates(entity_id, update.pairs)

    async def append_state(self, entity_id: str, update: StateUpdate) -> None:
        async with self._session_factory() as db:
            await FlightService(db).append_sample(entity_id, update)
