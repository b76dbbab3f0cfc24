"""DroneBridge CLI — run the bridge, manage records, watch live streams.

Usage:
    dronebridge serve                          # API + gateways + MQTT bridge
    dronebridge status                         # Health, bus state, viewers
    dronebridge create-track -c 121.47,31.23   # New track (prints its id)
    dronebridge create-flight --track-id ID    # New flight report
    dronebridge track ID                       # Show a track ("latest" works)
    dronebridge flight ID                      # Show a flight report
    dronebridge tail                           # Follow /sse/location
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("DRONEBRIDGE_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(timeout: Optional[float] = 30.0) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the bridge."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=timeout)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when an event loop is already running (tests).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _parse_coordinate(value: str) -> list[float]:
    try:
        lon, lat = (float(part) for part in value.split(","))
    except ValueError:
        raise click.BadParameter(f"expected LON,LAT, got {value!r}")
    return [lon, lat]


def _fail(resp: httpx.Response) -> None:
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    click.secho(f"Error {resp.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="dronebridge")
def main():
    """DroneBridge — MQTT telemetry to storage and live viewers."""


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", type=int, default=None, help="Bind port (default from settings)")
@click.option("--no-bridge", is_flag=True, help="Serve API and gateways without the MQTT loop")
def serve(host: Optional[str], port: Optional[int], no_bridge: bool):
    """Run the API, the viewer gateways and the MQTT bridge."""
    import uvicorn

    if no_bridge:
        os.environ["DRONEBRIDGE_BRIDGE_ENABLED"] = "false"

    from dronebridge.config import settings

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    uvicorn.run(
        "dronebridge.main:app",
        host=host or settings.host,
        port=port or settings.port,
    )


@main.command()
def status():
    """Show bridge health, bus state and connected viewers."""
    _run(_status_impl())


async def _status_impl():
    async with _client() as c:
        try:
            r = await c.get("/api/v1/health")
        except httpx.ConnectError:
            click.secho(f"Bridge not reachable at {_api_url()}", fg="red", err=True)
            sys.exit(1)
    health = r.json()
    color = "green" if health.get("status") == "healthy" else "yellow"
    click.secho(f"Status:   {health.get('status')}", fg=color, bold=True)
    click.echo(f"Version:  {health.get('version')}")
    click.echo(f"Database: {health.get('database')}")
    click.echo(f"Bus:      {health.get('bus')}")
    for group, count in health.get("subscribers", {}).items():
        click.echo(f"Viewers ({group}): {count}")


@main.command("create-track")
@click.option("--coordinate", "-c", "coordinates", multiple=True, help="LON,LAT (repeatable)")
def create_track(coordinates: tuple[str, ...]):
    """Create a track so location telemetry for it is accepted."""
    body = {"coordinates": [_parse_coordinate(c) for c in coordinates], "totalPoints": 0}
    _run(_post_impl("/api/v1/tracks", body))


@main.command("create-flight")
@click.option("--track-id", "-t", help="Track the flight belongs to")
def create_flight(track_id: Optional[str]):
    """Create a flight report so state telemetry for it is accepted."""
    _run(_post_impl("/api/v1/flights", {"trackId": track_id}))


async def _post_impl(path: str, body: dict):
    async with _client() as c:
        r = await c.post(path, json=body)
    if r.status_code != 201:
        _fail(r)
    record = r.json()
    click.secho(f"Created {record['_id']}", fg="green")
    click.echo(_pretty_json(record))


@main.command()
@click.argument("track_id")
def track(track_id: str):
    """Show a track. Use "latest" for the most recently updated one."""
    _run(_get_impl(f"/api/v1/tracks/{track_id}"))


@main.command()
@click.argument("flight_id")
def flight(flight_id: str):
    """Show a flight report."""
    _run(_get_impl(f"/api/v1/flights/{flight_id}"))


async def _get_impl(path: str):
    async with _client() as c:
        r = await c.get(path)
    if r.status_code != 200:
        _fail(r)
    click.echo(_pretty_json(r.json()))


@main.command()
def tail():
    """Follow live location updates from /sse/location."""
    try:
        _run(_tail_impl())
    except KeyboardInterrupt:
        pass


async def _tail_impl():
    async with _client(timeout=None) as c:
        async with c.stream("GET", "/sse/location") as r:
            if r.status_code != 200:
                await r.aread()
                _fail(r)
            click.secho("Listening for location updates (Ctrl+C to stop)...", dim=True)
            async for line in r.aiter_lines():
                if not line.startswith("data:"):
                    continue
                point = json.loads(line[len("data:"):].strip())
                click.echo(f"lon={point['longitude']:.6f}  lat={point['latitude']:.6f}")


if __name__ == "__main__":
    main()
