"""Pydantic schemas for tracks and flights.

Request and response bodies use the camelCase names the dashboards
already consume (`_id`, `totalPoints`, `lastUpdate`, ...). Input schemas
accept either the alias or the field name.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, FiniteFloat

Coordinate = tuple[FiniteFloat, FiniteFloat]


# ─── Tracks ─────────────────────────────────────────────

class TrackCreate(BaseModel):
    coordinates: list[Coordinate] = Field(default_factory=list)
    total_points: int = Field(default=0, ge=0, alias="totalPoints")

    model_config = {"populate_by_name": True}


class TrackAppend(BaseModel):
    coordinates_to_add: list[Coordinate] = Field(..., alias="coordinatesToAdd")

    model_config = {"populate_by_name": True}


class TrackRead(BaseModel):
    id: str = Field(serialization_alias="_id")
    start_time: datetime = Field(serialization_alias="startTime")
    last_update: datetime = Field(serialization_alias="lastUpdate")
    coordinates: list[tuple[float, float]]
    total_points: int = Field(serialization_alias="totalPoints")

    model_config = {"from_attributes": True}


# ─── Flights ────────────────────────────────────────────

class FlightCreate(BaseModel):
    track_id: Optional[str] = Field(default=None, alias="trackId")

    model_config = {"populate_by_name": True}


class FlightRead(BaseModel):
    id: str = Field(serialization_alias="_id")
    track_id: Optional[str] = Field(serialization_alias="trackId")
    battery_capacity: list[float] = Field(serialization_alias="batteryCapacity")
    estimated_remaining_usage_time: list[float] = Field(
        serialization_alias="estimatedRemainingUsageTime"
    )
    cabin_temperature: list[float] = Field(serialization_alias="cabinTemperature")
    aircraft_altitude: list[float] = Field(serialization_alias="aircraftAltitude")
    distance_to_fan: list[float] = Field(serialization_alias="distanceToFan")

    model_config = {"from_attributes": True}
