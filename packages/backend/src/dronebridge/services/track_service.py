"""Track service — business logic for ShipTrack records.

API routes and the telemetry store both go through this class; the store
only ever calls exists() and append_coordinates().
"""

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dronebridge.db.models import ShipTrack, TrackPoint, new_entity_id, utcnow
from dronebridge.services.errors import EntityNotFound, parse_entity_id

Pair = tuple[float, float]


def _points(track_id: str, pairs: list[Pair], start: int = 0) -> list[TrackPoint]:
    return [
        TrackPoint(track_id=track_id, seq=start + i, longitude=lon, latitude=lat)
        for i, (lon, lat) in enumerate(pairs)
    ]


class TrackService:
    """Business logic for ship/drone tracks."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, coordinates: list[Pair], total_points: int = 0) -> ShipTrack:
        """Create a track. Called by the out-of-band workflow before telemetry."""
        track_id = new_entity_id()
        track = ShipTrack(
            id=track_id,
            total_points=total_points,
            points=_points(track_id, coordinates),
        )
        self.db.add(track)
        await self.db.commit()
        return track

    async def get(self, track_id: str) -> ShipTrack | None:
        key = parse_entity_id(track_id)
        result = await self.db.execute(
            select(ShipTrack)
            .where(ShipTrack.id == key)
            .options(selectinload(ShipTrack.points))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def exists(self, track_id: str) -> bool:
        key = parse_entity_id(track_id)
        result = await self.db.execute(select(ShipTrack.id).where(ShipTrack.id == key))
        return result.scalar_one_or_none() is not None

    async def get_latest(self) -> ShipTrack | None:
        """Most recently updated track."""
        result = await self.db.execute(
            select(ShipTrack)
            .order_by(ShipTrack.last_update.desc())
            .limit(1)
            .options(selectinload(ShipTrack.points))
        )
        return result.scalars().first()

    async def replace(
        self, track_id: str, coordinates: list[Pair], total_points: int
    ) -> ShipTrack:
        """Overwrite a track's coordinates and counter."""
        key = parse_entity_id(track_id)
        result = await self.db.execute(
            update(ShipTrack)
            .where(ShipTrack.id == key)
            .values(total_points=total_points, last_update=utcnow())
        )
        if result.rowcount == 0:
            raise EntityNotFound("Track", key)

        await self.db.execute(delete(TrackPoint).where(TrackPoint.track_id == key))
        self.db.add_all(_points(key, coordinates))
        await self.db.commit()
        return await self.get(key)

    async def delete(self, track_id: str) -> bool:
        key = parse_entity_id(track_id)
        await self.db.execute(delete(TrackPoint).where(TrackPoint.track_id == key))
        result = await self.db.execute(delete(ShipTrack).where(ShipTrack.id == key))
        await self.db.commit()
        return result.rowcount > 0

    async def append_coordinates(self, track_id: str, pairs: list[Pair]) -> int:
        """Append a batch of pairs in one transaction.

        A non-empty batch bumps total_points by exactly one, however many
        pairs it carries. last_update is always refreshed to now.
        Returns the number of pairs appended.
        """
        key = parse_entity_id(track_id)
        values = {"last_update": utcnow()}
        if pairs:
            values["total_points"] = ShipTrack.total_points + 1

        # The UPDATE takes the row lock, so concurrent appends to the same
        # track serialize on it before reading the next sequence number.
        result = await self.db.execute(
            update(ShipTrack).where(ShipTrack.id == key).values(**values)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise EntityNotFound("Track", key)

        if pairs:
            next_seq = await self.db.scalar(
                select(func.coalesce(func.max(TrackPoint.seq) + 1, 0)).where(
                    TrackPoint.track_id == key
                )
            )
            self.db.add_all(_points(key, pairs, start=next_seq))

        await self.db.commit()
        return len(pairs)
