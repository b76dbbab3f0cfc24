"""SQLAlchemy ORM models — single source of truth for the database schema.

Two record types are tracked, each keyed by a 24-hex-character id:

- ShipTrack: a track with its ordered coordinate sequence (TrackPoint rows),
  a point counter and start/last-update timestamps.
- Flight: per-flight telemetry where each of the five readings is a growing
  sequence (one FlightSample row per state update).

Sequences live in child tables ordered by `seq` so appends are plain INSERTs
inside the same transaction as the parent update.
"""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_entity_id() -> str:
    """24 lowercase hex characters, the same shape as a MongoDB ObjectId."""
    return secrets.token_hex(12)


# ══════════════════════════════════════════════════════════════
# Tracks
# ══════════════════════════════════════════════════════════════


class ShipTrack(Base):
    """A tracked vessel or drone path.

    total_points counts accepted location batches, not individual
    coordinates: a batch of N pairs adds N TrackPoint rows and bumps
    total_points by one.
    """

    __tablename__ = "ship_tracks"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_entity_id)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    last_update: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    total_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    points: Mapped[list["TrackPoint"]] = relationship(
        back_populates="track",
        order_by="TrackPoint.seq",
        cascade="all, delete-orphan",
    )

    @property
    def coordinates(self) -> list[tuple[float, float]]:
        return [(p.longitude, p.latitude) for p in self.points]


class TrackPoint(Base):
    __tablename__ = "track_points"

    track_id: Mapped[str] = mapped_column(
        ForeignKey("ship_tracks.id", ondelete="CASCADE"), primary_key=True
    )
    seq: Mapped[int] = mapped_column(Integer, primary_key=True)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)

    track: Mapped["ShipTrack"] = relationship(back_populates="points")


# ══════════════════════════════════════════════════════════════
# Flights
# ══════════════════════════════════════════════════════════════


class Flight(Base):
    """Flight telemetry report, optionally linked to the track it flew."""

    __tablename__ = "flights"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_entity_id)
    track_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("ship_tracks.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    samples: Mapped[list["FlightSample"]] = relationship(
        back_populates="flight",
        order_by="FlightSample.seq",
        cascade="all, delete-orphan",
    )

    # Column-wise views of the samples, one list per reading
    @property
    def battery_capacity(self) -> list[float]:
        return [s.battery_capacity for s in self.samples]

    @property
    def estimated_remaining_usage_time(self) -> list[float]:
        return [s.estimated_remaining_usage_time for s in self.samples]

    @property
    def cabin_temperature(self) -> list[float]:
        return [s.cabin_temperature for s in self.samples]

    @property
    def aircraft_altitude(self) -> list[float]:
        return [s.aircraft_altitude for s in self.samples]

    @property
    def distance_to_fan(self) -> list[float]:
        return [s.distance_to_fan for s in self.samples]


class FlightSample(Base):
    __tablename__ = "flight_samples"

    flight_id: Mapped[str] = mapped_column(
        ForeignKey("flights.id", ondelete="CASCADE"), primary_key=True
    )
    seq: Mapped[int] = mapped_column(Integer, primary_key=True)
    battery_capacity: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_remaining_usage_time: Mapped[float] = mapped_column(Float, nullable=False)
    cabin_temperature: Mapped[float] = mapped_column(Float, nullable=False)
    aircraft_altitude: Mapped[float] = mapped_column(Float, nullable=False)
    distance_to_fan: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    flight: Mapped["Flight"] = relationship(back_populates="samples")
