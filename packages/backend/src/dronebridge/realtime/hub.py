"""In-memory broadcast hub — fire-and-forget fan-out to live viewers.

Each broadcast group keeps a set of subscriptions. `send()` appends the
message to every subscription's backlog and returns immediately; it never
awaits, so a slow viewer cannot stall ingestion. Backlogs are bounded:
when one is full the oldest pending message is dropped and the subscriber
is told how many it missed on its next `recv()`.

Nothing is persisted or replayed. A viewer that subscribes after a send
never sees that message.
"""

import asyncio
from collections import deque

import structlog

from dronebridge.bus.topics import BroadcastGroup

logger = structlog.get_logger()

DEFAULT_CAPACITY = 100


class SubscriberLagged(Exception):
    """Raised once by recv() after the backlog overflowed."""

    def __init__(self, skipped: int):
        super().__init__(f"Subscriber lagged, skipped {skipped} message(s)")
        self.skipped = skipped


class SubscriptionClosed(Exception):
    pass


class Subscription:
    """A receive handle with its own bounded backlog.

    Use as an async iterator (lag is surfaced as SubscriberLagged) or call
    recv() directly. close() unregisters it from the hub.
    """

    def __init__(self, hub: "BroadcastHub", group: BroadcastGroup, capacity: int):
        self.group = group
        self._hub = hub
        self._backlog: deque[str] = deque(maxlen=capacity)
        self._ready = asyncio.Event()
        self._skipped = 0
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._backlog)

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, message: str) -> None:
        if len(self._backlog) == self._backlog.maxlen:
            self._skipped += 1
        self._backlog.append(message)
        self._ready.set()

    async def recv(self) -> str:
        """Wait for the next message.

        Raises SubscriberLagged if messages were dropped since the last
        call; the following call resumes with the oldest retained one.
        """
        while True:
            if self._skipped:
                skipped, self._skipped = self._skipped, 0
                raise SubscriberLagged(skipped)
            if self._backlog:
                return self._backlog.popleft()
            if self._closed:
                raise SubscriptionClosed()
            self._ready.clear()
            await self._ready.wait()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._unsubscribe(self)
        self._ready.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        try:
            return await self.recv()
        except SubscriptionClosed:
            raise StopAsyncIteration from None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class BroadcastHub:
    """One multicast channel per BroadcastGroup, created up front."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._groups: dict[BroadcastGroup, set[Subscription]] = {
            group: set() for group in BroadcastGroup
        }

    def send(self, group: BroadcastGroup, message: str) -> int:
        """Deliver to every current subscriber; returns how many were reached.

        Zero subscribers is not an error.
        """
        subscribers = self._groups[BroadcastGroup(group)]
        for sub in subscribers:
            sub._push(message)
        return len(subscribers)

    def subscribe(self, group: BroadcastGroup) -> Subscription:
        """Register a viewer into a group. The handle is live immediately."""
        group = BroadcastGroup(group)
        sub = Subscription(self, group, self.capacity)
        self._groups[group].add(sub)
        logger.debug("hub.subscribed", group=group.value, subscribers=len(self._groups[group]))
        return sub

    # Gateways only need this entry point.
    register_viewer = subscribe

    def subscriber_count(self, group: BroadcastGroup) -> int:
        return len(self._groups[BroadcastGroup(group)])

    def _unsubscribe(self, sub: Subscription) -> None:
        self._groups[sub.group].discard(sub)
        logger.debug("hub.unsubscribed", group=sub.group.value, subscribers=len(self._groups[sub.group]))

    def close(self) -> None:
        """Close every subscription (application shutdown)."""
        for subs in self._groups.values():
            for sub in list(subs):
                sub.close()
