"""Flight service — business logic for Flight telemetry records."""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dronebridge.bus.messages import StateUpdate
from dronebridge.db.models import Flight, FlightSample, new_entity_id
from dronebridge.services.errors import EntityNotFound, parse_entity_id


class FlightService:
    """Business logic for flight reports."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, track_id: str | None = None) -> Flight:
        flight = Flight(
            id=new_entity_id(),
            track_id=parse_entity_id(track_id) if track_id else None,
            samples=[],
        )
        self.db.add(flight)
        await self.db.commit()
        return flight

    async def get(self, flight_id: str) -> Flight | None:
        key = parse_entity_id(flight_id)
        result = await self.db.execute(
            select(Flight)
            .where(Flight.id == key)
            .options(selectinload(Flight.samples))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def exists(self, flight_id: str) -> bool:
        key = parse_entity_id(flight_id)
        result = await self.db.execute(select(Flight.id).where(Flight.id == key))
        return result.scalar_one_or_none() is not None

    async def delete(self, flight_id: str) -> bool:
        key = parse_entity_id(flight_id)
        await self.db.execute(delete(FlightSample).where(FlightSample.flight_id == key))
        result = await self.db.execute(delete(Flight).where(Flight.id == key))
        await self.db.commit()
        return result.rowcount > 0

    async def append_sample(self, flight_id: str, state: StateUpdate) -> None:
        """Append one reading to each of the five telemetry sequences.

        The row lock keeps the sequence number unique under concurrent
        appends to the same flight.
        """
        key = parse_entity_id(flight_id)
        found = await self.db.scalar(
            select(Flight.id).where(Flight.id == key).with_for_update()
        )
        if found is None:
            await self.db.rollback()
            raise EntityNotFound("Flight", key)

        next_seq = await self.db.scalar(
            select(func.coalesce(func.max(FlightSample.seq) + 1, 0)).where(
                FlightSample.flight_id == key
            )
        )
        self.db.add(FlightSample(flight_id=key, seq=next_seq, **state.model_dump()))
        await self.db.commit()
