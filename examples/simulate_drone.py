#!/usr/bin/env python3
"""
DroneBridge simulator — fly one drone around a circle.

Creates a track and a flight, then publishes a location batch and a state
update every second on drone/<id>/location and drone/<id>/state. Watch the
result with `dronebridge tail` (locations) or a WebSocket client on
/flight_ws (state).

Run with: python examples/simulate_drone.py [--steps 60]

Requires: pip install httpx aiomqtt
Bridge must be running: http://localhost:8000
"""

import argparse
import asyncio
import json
import math

import aiomqtt

from _common import broker_settings, setup_records

CENTER = (121.47, 31.23)
RADIUS = 0.01


def position(step: float) -> list[float]:
    angle = step * math.pi / 30
    return [
        round(CENTER[0] + RADIUS * math.cos(angle), 6),
        round(CENTER[1] + RADIUS * math.sin(angle), 6),
    ]


def state(step: int) -> dict:
    return {
        "battery_capacity": max(100.0 - step * 0.5, 0.0),
        "estimated_remaining_usage_time": max(45.0 - step * 0.25, 0.0),
        "cabin_temperature": 21.0 + math.sin(step / 10),
        "aircraft_altitude": 120.0 + 5 * math.sin(step / 5),
        "distance_to_fan": 350.0 + step,
    }


async def fly(steps: int) -> None:
    print("Setting up records...")
    records = setup_records(tuple(position(0)))
    track_id = records["track"]["_id"]
    flight_id = records["flight"]["_id"]

    async with aiomqtt.Client(**broker_settings()) as client:
        print(f"\nPublishing {steps} steps...")
        for step in range(1, steps + 1):
            # Two points per batch: the bridge counts the batch once and
            # broadcasts only its first pair.
            batch = [position(step), position(step + 0.5)]
            await client.publish(f"drone/{track_id}/location", json.dumps(batch), qos=1)
            await client.publish(f"drone/{flight_id}/state", json.dumps(state(step)), qos=1)
            print(f"   step {step:>3}: lon={batch[0][0]:.6f} lat={batch[0][1]:.6f}")
            await asyncio.sleep(1)

    track = records["client"].get(f"/tracks/{track_id}").json()
    print(f"\nDone. Track has {len(track['coordinates'])} coordinates, totalPoints={track['totalPoints']}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--steps", type=int, default=60)
    args = parser.parse_args()
    asyncio.run(fly(args.steps))


if __name__ == "__main__":
    main()
