"""Message dispatcher — route one bus publish to storage and the hub.

For each publish:
1. Parse the topic into (entity id, message class); bad shape → drop
2. Decode the payload for that class; bad payload → drop
3. Check the target record exists; missing or lookup error → drop
4. Append the update; failure → drop with a warning
5. Broadcast a derived notice to the class's group

dispatch() never raises. Every failure is logged and the poll loop moves
on to the next message; nothing is queued or retried here.

The existence check and the append are separate round trips. If a record
is deleted in between, the append reports EntityNotFound and the message
is dropped like any other apply failure.
"""

from dataclasses import dataclass

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from dronebridge.bus.messages import (
    decode_state_update,
    decode_track_update,
    flight_notice,
    location_notice,
)
from dronebridge.bus.topics import (
    GROUP_FOR_CLASS,
    MalformedTopic,
    MessageClass,
    Topic,
    UnknownMessageClass,
    parse_topic,
)
from dronebridge.realtime.hub import BroadcastHub
from dronebridge.services.errors import EntityNotFound, InvalidEntityId
from dronebridge.services.telemetry_store import TelemetryStore

logger = structlog.get_logger()

# Errors that mean "this message cannot be stored", as opposed to bugs.
STORE_ERRORS = (InvalidEntityId, EntityNotFound, SQLAlchemyError, OSError)


@dataclass
class DispatcherStats:
    """Runtime counters for monitoring."""
    dispatched: int = 0
    dropped: int = 0
    errors: int = 0


class MessageDispatcher:
    """Persist-then-broadcast handler for inbound telemetry."""

    def __init__(self, store: TelemetryStore, hub: BroadcastHub):
        self.store = store
        self.hub = hub
        self.stats = DispatcherStats()

    async def dispatch(self, topic: str, payload: bytes) -> None:
        try:
            await self._dispatch(topic, payload)
        except Exception:
            # Keep the poll loop alive whatever happens in one message.
            logger.exception("dispatch.unexpected_error", topic=topic)
            self.stats.errors += 1

    async def _dispatch(self, topic: str, payload: bytes) -> None:
        try:
            parsed = parse_topic(topic)
        except MalformedTopic:
            logger.error("dispatch.invalid_topic", topic=topic)
            self.stats.dropped += 1
            return
        except UnknownMessageClass as e:
            logger.warning("dispatch.unknown_class", topic=topic, message_class=e.name)
            self.stats.dropped += 1
            return

        log = logger.bind(entity_id=parsed.entity_id, message_class=parsed.message_class.value)
        log.info("dispatch.received")

        if parsed.message_class is MessageClass.LOCATION:
            await self._handle_location(parsed, payload, log)
        else:
            await self._handle_state(parsed, payload, log)

    async def _handle_location(self, topic: Topic, payload: bytes, log) -> None:
        try:
            update = decode_track_update(payload)
        except ValidationError as e:
            log.error("dispatch.decode_failed", error=str(e))
            self.stats.dropped += 1
            return

        if not await self._entity_exists(topic, log):
            return

        try:
            await self.store.append_track(topic.entity_id, update)
        except STORE_ERRORS as e:
            log.warning("dispatch.apply_failed", error=str(e))
            self.stats.dropped += 1
            return

        log.info("dispatch.track_appended", pairs=len(update))
        self.stats.dispatched += 1
        notice = location_notice(update)
        if notice is not None:
            self._broadcast(topic.message_class, notice, log)

    async def _handle_state(self, topic: Topic, payload: bytes, log) -> None:
        try:
            update = decode_state_update(payload)
        except ValidationError as e:
            log.error("dispatch.decode_failed", error=str(e))
            self.stats.dropped += 1
            return

        if not await self._entity_exists(topic, log):
            return

        try:
            await self.store.append_state(topic.entity_id, update)
        except STORE_ERRORS as e:
            log.warning("dispatch.apply_failed", error=str(e))
            self.stats.dropped += 1
            return

        log.info("dispatch.state_appended")
        self.stats.dispatched += 1
        self._broadcast(topic.message_class, flight_notice(update), log)

    async def _entity_exists(self, topic: Topic, log) -> bool:
        try:
            found = await self.store.exists(topic.message_class, topic.entity_id)
        except STORE_ERRORS as e:
            log.error("dispatch.lookup_failed", error=str(e))
            self.stats.dropped += 1
            return False
        if not found:
            log.warning("dispatch.entity_missing")
            self.stats.dropped += 1
        return found

    def _broadcast(self, message_class: MessageClass, notice: str, log) -> None:
        group = GROUP_FOR_CLASS[message_class]
        reached = self.hub.send(group, notice)
        log.debug("dispatch.broadcast", group=group.value, subscribers=reached)

    def get_stats(self) -> dict:
        return {
            "dispatched": self.stats.dispatched,
            "dropped": self.stats.dropped,
            "errors": self.stats.errors,
        }
