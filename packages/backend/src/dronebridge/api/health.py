"""Health check endpoint.

Reports the database, the bus connection state and live viewer counts.
The bridge is "degraded" while the bus is not connected; it keeps
retrying on its own.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from dronebridge import __version__
from dronebridge.bus.topics import BroadcastGroup
from dronebridge.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    connection = getattr(request.app.state, "connection", None)
    if connection is None:
        checks["bus"] = "disabled"
    else:
        checks["bus"] = "ok" if connection.state.value == "connected" else connection.state.value

    status = "healthy" if all(
        v in ("ok", "disabled") for k, v in checks.items() if k != "version"
    ) else "degraded"

    result = {"status": status, **checks}

    hub = getattr(request.app.state, "hub", None)
    if hub is not None:
        result["subscribers"] = {g.value: hub.subscriber_count(g) for g in BroadcastGroup}
    if connection is not None:
        result["bus_stats"] = connection.get_stats()
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is not None:
        result["dispatch_stats"] = dispatcher.get_stats()
    return result
