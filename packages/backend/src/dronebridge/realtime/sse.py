"""Server-Sent Events gateway — live location updates.

GET /sse/location streams one `data:` event per location broadcast.
sse-starlette sends keep-alive pings and cancels the generator when the
client disconnects, which releases the hub subscription.
"""

from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from dronebridge.bus.topics import BroadcastGroup
from dronebridge.realtime.hub import (
    BroadcastHub,
    SubscriberLagged,
    SubscriptionClosed,
)

logger = structlog.get_logger()
router = APIRouter()

PING_SECONDS = 15


async def location_events(hub: BroadcastHub, client: str = "unknown") -> AsyncIterator[dict]:
    """Turn location broadcasts into SSE events until the hub closes.

    The viewer is registered when the stream starts and released when the
    generator finishes or is cancelled; a response that never streams
    never registers.
    """
    with hub.register_viewer(BroadcastGroup.LOCATION) as subscription:
        logger.info(
            "sse.connected",
            client=client,
            subscribers=hub.subscriber_count(BroadcastGroup.LOCATION),
        )
        while True:
            try:
                data = await subscription.recv()
            except SubscriberLagged as e:
                logger.warning("sse.lagged", skipped=e.skipped)
                continue
            except SubscriptionClosed:
                return
            yield {"data": data}


@router.get("/sse/location")
async def location_stream(request: Request):
    hub: BroadcastHub = request.app.state.hub
    return EventSourceResponse(
        location_events(hub, request.client.host if request.client else "unknown"),
        ping=PING_SECONDS,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
