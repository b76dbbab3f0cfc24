"""
Shared helpers for DroneBridge examples.

Handles the health check and record setup (track + flight) so each
example can focus on the telemetry it publishes.
"""

import os
import ssl
import sys

import httpx

BASE = os.environ.get("DRONEBRIDGE_API_URL", "http://localhost:8000") + "/api/v1"


def check_backend() -> None:
    """Verify the bridge is reachable and its database is up."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Bridge not reachable at {BASE}")
        print("Start it with:  dronebridge serve")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print("Bridge health:")
    print(f"  Database: {'✓' if health['database'] == 'ok' else '✗'}")
    print(f"  Bus:      {health['bus']}")

    if health["database"] != "ok":
        print("\nERROR: Database is not connected. Start it with: docker compose up -d")
        sys.exit(1)


def setup_records(start: tuple[float, float]) -> dict:
    """Create a track starting at `start` and a flight linked to it.

    Telemetry for an id is only accepted once its record exists, so the
    examples always create both before publishing.
    """
    check_backend()
    client = httpx.Client(base_url=BASE, timeout=10)

    resp = client.post("/tracks", json={"coordinates": [list(start)], "totalPoints": 1})
    assert resp.status_code == 201, f"Track creation failed: {resp.text}"
    track = resp.json()

    resp = client.post("/flights", json={"trackId": track["_id"]})
    assert resp.status_code == 201, f"Flight creation failed: {resp.text}"
    flight = resp.json()

    print(f"  Track:  {track['_id']}")
    print(f"  Flight: {flight['_id']}")
    return {"client": client, "track": track, "flight": flight}


def broker_settings() -> dict:
    """Broker connection kwargs for aiomqtt.Client, read from the bridge's env vars."""
    ca_path = os.environ.get("DRONEBRIDGE_CA_CERT_PATH")
    tls = ssl.create_default_context(cafile=ca_path) if ca_path else ssl.create_default_context()
    return {
        "hostname": os.environ.get("DRONEBRIDGE_MQTT_HOST", "localhost"),
        "port": int(os.environ.get("DRONEBRIDGE_MQTT_PORT", "8883")),
        "username": os.environ.get("DRONEBRIDGE_MQTT_USERNAME") or None,
        "password": os.environ.get("DRONEBRIDGE_MQTT_PASSWORD") or None,
        "tls_context": tls,
    }
