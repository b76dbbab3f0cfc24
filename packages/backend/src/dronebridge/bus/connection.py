"""MQTT connection manager — keeps one broker session alive forever.

State machine:

    DISCONNECTED ──connect (TLS + credentials)──▶ CONNECTING
    CONNECTING ──subscribe filters (bounded retry)──▶ CONNECTED
    CONNECTED ──each inbound publish──▶ dispatcher, stay CONNECTED
    any state ──any error──▶ DISCONNECTED, cool-down, reconnect

Reconnects are unbounded: a broker restart or TLS renegotiation never
ends the process. Subscriptions are re-issued on every connect because
the broker session is not assumed to survive. A subscription that keeps
failing is logged and skipped; the loop proceeds with the rest.

The aiomqtt client is created, used and discarded inside run(); no other
component holds a reference to it.
"""

import asyncio
import enum
import logging
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import aiomqtt
import structlog

from dronebridge.bus.topics import subscription_filters

logger = structlog.get_logger()

# QoS 1: at-least-once
SUBSCRIBE_QOS = 1

RECONNECT_ERRORS = (aiomqtt.MqttError, OSError)


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class BusConfig:
    """Everything needed to reach the broker. Built by the bootstrap layer."""
    host: str
    port: int = 8883
    username: str = ""
    password: str = ""
    ca_cert: Optional[bytes] = None  # PEM; None = system trust store
    client_id: str = ""
    keepalive: int = 5
    clean_session: bool = False
    namespace: str = "drone"
    subscribe_retries: int = 3
    subscribe_retry_delay: float = 2.0
    reconnect_delay: float = 5.0


@dataclass
class ConnectionStats:
    connects: int = 0
    reconnects: int = 0
    messages: int = 0
    errors: int = 0
    connected_at: Optional[datetime] = None


class MessageHandler(Protocol):
    async def dispatch(self, topic: str, payload: bytes) -> None: ...


def build_tls_context(ca_cert: Optional[bytes]) -> ssl.SSLContext:
    """Trust the given CA (PEM or DER bytes), or the system store when None."""
    if ca_cert is None:
        return ssl.create_default_context()
    if ca_cert.lstrip().startswith(b"-----"):
        return ssl.create_default_context(cadata=ca_cert.decode("ascii"))
    return ssl.create_default_context(cadata=ca_cert)


def create_client(config: BusConfig) -> aiomqtt.Client:
    """Build an encrypted, credentialed client for one session."""
    return aiomqtt.Client(
        hostname=config.host,
        port=config.port,
        username=config.username or None,
        password=config.password or None,
        identifier=config.client_id or None,
        keepalive=config.keepalive,
        clean_session=config.clean_session,
        tls_context=build_tls_context(config.ca_cert),
        logger=logging.getLogger("dronebridge.mqtt"),
    )


def _payload_bytes(payload: Any) -> bytes:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if payload is None:
        return b""
    return str(payload).encode()


class ConnectionManager:
    """Owns the MQTT session and feeds publishes to a MessageHandler.

    `client_factory` builds a fresh async-context-manager client for each
    connection attempt; it defaults to create_client().
    """

    def __init__(
        self,
        config: BusConfig,
        handler: MessageHandler,
        client_factory: Callable[[BusConfig], Any] = create_client,
    ):
        self.config = config
        self.handler = handler
        self._client_factory = client_factory
        self.state = ConnectionState.DISCONNECTED
        self.stats = ConnectionStats()
        self._running = False

    async def run(self) -> None:
        """Connect, subscribe and poll until stop() or cancellation."""
        self._running = True
        logger.info(
            "bus.starting",
            host=self.config.host,
            port=self.config.port,
            filters=subscription_filters(self.config.namespace),
        )
        while self._running:
            try:
                await self._session()
                logger.warning("bus.stream_ended")
            except RECONNECT_ERRORS as e:
                logger.error("bus.connection_error", error=str(e), state=self.state.value)
                self.stats.errors += 1
            except Exception:
                # Bad TLS material or a client bug: log and reconnect.
                logger.exception("bus.unexpected_error", state=self.state.value)
                self.stats.errors += 1
            finally:
                self.state = ConnectionState.DISCONNECTED

            if not self._running:
                break
            logger.warning("bus.reconnecting", delay=self.config.reconnect_delay)
            self.stats.reconnects += 1
            await asyncio.sleep(self.config.reconnect_delay)

    def stop(self) -> None:
        """Stop after the current session. Cancel the task to interrupt a poll."""
        self._running = False

    async def _session(self) -> None:
        self.state = ConnectionState.CONNECTING
        client = self._client_factory(self.config)
        async with client:
            self.stats.connects += 1
            logger.info("bus.connected", host=self.config.host, port=self.config.port)

            for topic_filter in subscription_filters(self.config.namespace):
                await self._subscribe_with_retry(client, topic_filter)

            self.state = ConnectionState.CONNECTED
            self.stats.connected_at = datetime.now(timezone.utc)

            async for message in client.messages:
                self.stats.messages += 1
                # One message at a time, in bus order.
                await self.handler.dispatch(
                    message.topic.value, _payload_bytes(message.payload)
                )

    async def _subscribe_with_retry(self, client: Any, topic_filter: str) -> bool:
        retries = self.config.subscribe_retries
        for attempt in range(1, retries + 1):
            try:
                await client.subscribe(topic_filter, qos=SUBSCRIBE_QOS)
                logger.info("bus.subscribed", topic=topic_filter)
                return True
            except aiomqtt.MqttError as e:
                logger.warning(
                    "bus.subscribe_failed",
                    topic=topic_filter,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < retries:
                    await asyncio.sleep(self.config.subscribe_retry_delay)

        logger.error("bus.subscribe_gave_up", topic=topic_filter, attempts=retries)
        return False

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "connects": self.stats.connects,
            "reconnects": self.stats.reconnects,
            "messages": self.stats.messages,
            "errors": self.stats.errors,
            "connected_at": (
                self.stats.connected_at.isoformat()
                if self.stats.connected_at
                else None
            ),
        }
