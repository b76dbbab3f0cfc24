"""WebSocket gateway — live flight-state updates.

Each client connects to /flight_ws. The handler:
1. Registers a hub subscription on the flight group (before accepting,
   so nothing sent after the handshake is missed)
2. Forwards every hub message to the client as a text frame
3. Reads client frames (text pings get a pong; close ends the session)

The two loops are linked: when either finishes, the other is cancelled.
The subscription is released however the handler exits, including a
failed handshake.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketState

from dronebridge.bus.topics import BroadcastGroup
from dronebridge.realtime.hub import (
    BroadcastHub,
    SubscriberLagged,
    Subscription,
    SubscriptionClosed,
)

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/flight_ws")
async def flight_websocket(websocket: WebSocket):
    """Stream flight-group broadcasts to one viewer."""
    hub: BroadcastHub = websocket.app.state.hub
    subscription = hub.register_viewer(BroadcastGroup.FLIGHT)
    log = logger

    try:
        await websocket.accept()
        client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
        log = logger.bind(client=client)
        log.info("ws.connected", subscribers=hub.subscriber_count(BroadcastGroup.FLIGHT))
        await _relay(websocket, subscription, log)
    finally:
        subscription.close()
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
        log.info("ws.disconnected")


async def _relay(websocket: WebSocket, subscription: Subscription, log) -> None:
    """Run the hub and client loops until either one finishes."""

    async def hub_listener():
        """Forward hub messages to the WebSocket client."""
        while True:
            try:
                message = await subscription.recv()
            except SubscriberLagged as e:
                log.warning("ws.lagged", skipped=e.skipped)
                continue
            except SubscriptionClosed:
                log.info("ws.hub_closed")
                return
            try:
                await websocket.send_text(message)
            except Exception as e:
                log.info("ws.send_failed", error=str(e))
                return

    async def client_listener():
        """Read client frames until the client goes away."""
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                log.info("ws.client_closed", code=frame.get("code"))
                return
            text = frame.get("text")
            if text is None:
                log.debug("ws.binary_frame", size=len(frame.get("bytes") or b""))
                continue
            try:
                msg = json.loads(text)
            except json.JSONDecodeError:
                log.debug("ws.text_frame", text=text)
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))

    hub_task = asyncio.create_task(hub_listener())
    client_task = asyncio.create_task(client_listener())

    try:
        done, _ = await asyncio.wait(
            [hub_task, client_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                log.info("ws.task_failed", error=str(task.exception()))
    finally:
        for task in (hub_task, client_task):
            if not task.done():
                task.cancel()
