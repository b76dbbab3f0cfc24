"""Payload schemas for bus messages and the notifications derived from them.

Location payload: JSON array of [longitude, latitude] pairs.
State payload: JSON object with exactly five numeric readings.

Both models are strict: numeric strings, extra fields and non-finite
numbers are rejected instead of coerced.
"""

import json

from pydantic import BaseModel, ConfigDict, FiniteFloat, RootModel


class TrackUpdate(RootModel[list[tuple[FiniteFloat, FiniteFloat]]]):
    """Ordered batch of (longitude, latitude) pairs."""

    model_config = ConfigDict(strict=True)

    @property
    def pairs(self) -> list[tuple[float, float]]:
        return self.root

    def __len__(self) -> int:
        return len(self.root)


class StateUpdate(BaseModel):
    """One reading of each flight telemetry channel."""

    battery_capacity: FiniteFloat
    estimated_remaining_usage_time: FiniteFloat
    cabin_temperature: FiniteFloat
    aircraft_altitude: FiniteFloat
    distance_to_fan: FiniteFloat

    model_config = ConfigDict(strict=True, extra="forbid")


def decode_track_update(payload: bytes | str) -> TrackUpdate:
    """Raises pydantic.ValidationError on anything but a list of pairs."""
    return TrackUpdate.model_validate_json(payload)


def decode_state_update(payload: bytes | str) -> StateUpdate:
    """Raises pydantic.ValidationError on a malformed state record."""
    return StateUpdate.model_validate_json(payload)


def location_notice(update: TrackUpdate) -> str | None:
    """Viewer payload for a location batch: the first pair only.

    Returns None for an empty batch (nothing to show).
    """
    if not update.pairs:
        return None
    longitude, latitude = update.pairs[0]
    return json.dumps({"longitude": longitude, "latitude": latitude})


def flight_notice(update: StateUpdate) -> str:
    """Viewer payload for a state update: the full record under "data"."""
    return json.dumps({"data": update.model_dump()})
