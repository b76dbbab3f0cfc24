"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The lifespan builds
the long-lived pieces once per process:

- BroadcastHub: one channel per broadcast group
- MessageDispatcher: SQL telemetry store + hub
- ConnectionManager: the MQTT poll loop, run as a background task

They are kept on app.state so the gateways and health check can reach
them. The bus loop only runs when DRONEBRIDGE_BRIDGE_ENABLED is true.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dronebridge import __version__
from dronebridge.api import api_router
from dronebridge.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    from dronebridge.bus.connection import ConnectionManager
    from dronebridge.bus.dispatcher import MessageDispatcher
    from dronebridge.db.engine import async_session_factory, engine
    from dronebridge.realtime.hub import BroadcastHub
    from dronebridge.services.telemetry_store import SqlTelemetryStore

    logger.info(
        "dronebridge.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    hub = BroadcastHub(capacity=settings.broadcast_capacity)
    dispatcher = MessageDispatcher(SqlTelemetryStore(async_session_factory), hub)
    app.state.hub = hub
    app.state.dispatcher = dispatcher
    app.state.connection = None

    bus_task = None
    if settings.bridge_enabled:
        connection = ConnectionManager(settings.bus_config(), dispatcher)
        app.state.connection = connection
        bus_task = asyncio.create_task(connection.run())
        logger.info("dronebridge.bus_started", host=settings.mqtt_host, port=settings.mqtt_port)
    else:
        logger.warning("dronebridge.bus_disabled")

    yield

    logger.info("dronebridge.shutdown", **dispatcher.get_stats())

    if bus_task is not None:
        app.state.connection.stop()
        bus_task.cancel()
        try:
            await bus_task
        except asyncio.CancelledError:
            pass

    hub.close()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="DroneBridge",
        description="MQTT telemetry bridge — durable storage plus live WebSocket/SSE fan-out",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from dronebridge.realtime.sse import router as sse_router
    from dronebridge.realtime.websocket import router as ws_router
    app.include_router(ws_router)
    app.include_router(sse_router)

    return app


# Default app instance (used by uvicorn: dronebridge.main:app)
app = create_app()
