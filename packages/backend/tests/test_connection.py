"""Connection manager — connect, subscribe, poll, reconnect.

The aiomqtt client is replaced by FakeClient through the client_factory
hook; delays are zero so the reconnect loop runs at full speed.
"""

import asyncio
import ssl
from types import SimpleNamespace

import aiomqtt
import pytest
from structlog.testing import capture_logs

from dronebridge.bus.connection import (
    BusConfig,
    ConnectionManager,
    ConnectionState,
    build_tls_context,
    create_client,
)

LOCATION_FILTER = "drone/+/location"
STATE_FILTER = "drone/+/state"


def fast_config(**overrides) -> BusConfig:
    values = dict(
        host="broker.test",
        subscribe_retry_delay=0,
        reconnect_delay=0,
    )
    values.update(overrides)
    return BusConfig(**values)


class FakeClient:
    """Stands in for aiomqtt.Client inside one session."""

    def __init__(self, publishes=(), *, fail_on_enter=None, end_with=None,
                 failing_filters=None, block=False):
        self.publishes = list(publishes)
        self.fail_on_enter = fail_on_enter
        self.end_with = end_with
        self.failing_filters = failing_filters or {}
        self.block = block
        self.subscribe_calls: list[tuple[str, int]] = []
        self.entered = False
        self.exited = False

    async def __aenter__(self):
        if self.fail_on_enter is not None:
            raise self.fail_on_enter
        self.entered = True
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True
        return False

    async def subscribe(self, topic_filter, qos=0):
        self.subscribe_calls.append((topic_filter, qos))
        if self.failing_filters.get(topic_filter, 0) > 0:
            self.failing_filters[topic_filter] -= 1
            raise aiomqtt.MqttError("subscribe rejected")

    @property
    def messages(self):
        return self._stream()

    async def _stream(self):
        for topic, payload in self.publishes:
            yield SimpleNamespace(topic=SimpleNamespace(value=topic), payload=payload)
        if self.end_with is not None:
            raise self.end_with
        if self.block:
            await asyncio.Event().wait()


class RecordingHandler:
    def __init__(self, stop_on=None):
        self.received: list[tuple[str, bytes]] = []
        self.states: list[ConnectionState] = []
        self.stop_on = stop_on
        self.manager: ConnectionManager | None = None

    async def dispatch(self, topic, payload):
        self.received.append((topic, payload))
        self.states.append(self.manager.state)
        if topic == self.stop_on:
            self.manager.stop()


def make_manager(clients, handler, **config):
    remaining = iter(clients)
    manager = ConnectionManager(
        fast_config(**config), handler, client_factory=lambda cfg: next(remaining)
    )
    handler.manager = manager
    return manager


@pytest.mark.asyncio
async def test_subscribes_to_both_filters_at_least_once():
    client = FakeClient([("drone/ABC123/location", b"[[1.0,2.0]]")])
    handler = RecordingHandler(stop_on="drone/ABC123/location")
    manager = make_manager([client], handler)

    await manager.run()

    assert client.subscribe_calls == [(LOCATION_FILTER, 1), (STATE_FILTER, 1)]
    assert client.exited
    assert manager.stats.reconnects == 0


@pytest.mark.asyncio
async def test_all_messages_reach_handler_in_bus_order():
    publishes = [(f"drone/T{i}/location", f"[[{i},{i}]]".encode()) for i in range(5)]
    client = FakeClient(publishes)
    handler = RecordingHandler(stop_on="drone/T4/location")
    manager = make_manager([client], handler)

    await manager.run()

    assert handler.received == publishes
    assert manager.stats.messages == 5


@pytest.mark.asyncio
async def test_state_is_connected_while_dispatching_and_disconnected_after():
    client = FakeClient([("drone/A/location", b"[]")])
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([client], handler)

    await manager.run()

    assert handler.states == [ConnectionState.CONNECTED]
    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnects_and_resubscribes_after_connection_loss():
    first = FakeClient(
        [("drone/A/location", b"[[1,1]]")],
        end_with=aiomqtt.MqttError("connection lost"),
    )
    # QoS 1 redelivers the unacknowledged publish on the new session.
    second = FakeClient([
        ("drone/A/location", b"[[1,1]]"),
        ("drone/A/state", b"{}"),
    ])
    handler = RecordingHandler(stop_on="drone/A/state")
    manager = make_manager([first, second], handler)

    with capture_logs() as logs:
        await manager.run()

    assert [t for t, _ in handler.received] == [
        "drone/A/location",
        "drone/A/location",
        "drone/A/state",
    ]
    assert first.subscribe_calls == second.subscribe_calls
    assert len(second.subscribe_calls) == 2
    assert manager.stats.connects == 2
    assert manager.stats.reconnects == 1
    assert manager.stats.errors == 1
    events = [e["event"] for e in logs]
    assert "bus.connection_error" in events
    assert "bus.reconnecting" in events


@pytest.mark.asyncio
async def test_connect_failure_is_retried():
    refused = FakeClient(fail_on_enter=ConnectionRefusedError("refused"))
    working = FakeClient([("drone/A/location", b"[]")])
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([refused, working], handler)

    await manager.run()

    assert not refused.entered
    assert refused.subscribe_calls == []
    assert handler.received == [("drone/A/location", b"[]")]
    assert manager.stats.connects == 1
    assert manager.stats.errors == 1


@pytest.mark.asyncio
async def test_stream_end_without_error_triggers_reconnect():
    quiet = FakeClient([])
    working = FakeClient([("drone/A/location", b"[]")])
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([quiet, working], handler)

    with capture_logs() as logs:
        await manager.run()

    assert manager.stats.connects == 2
    assert "bus.stream_ended" in [e["event"] for e in logs]


@pytest.mark.asyncio
async def test_subscribe_retries_then_succeeds():
    client = FakeClient(
        [("drone/A/location", b"[]")],
        failing_filters={LOCATION_FILTER: 2},
    )
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([client], handler)

    await manager.run()

    assert [f for f, _ in client.subscribe_calls] == [
        LOCATION_FILTER, LOCATION_FILTER, LOCATION_FILTER, STATE_FILTER,
    ]


@pytest.mark.asyncio
async def test_subscribe_gives_up_after_retries_and_keeps_going():
    client = FakeClient(
        [("drone/A/state", b"{}")],
        failing_filters={LOCATION_FILTER: 99},
    )
    handler = RecordingHandler(stop_on="drone/A/state")
    manager = make_manager([client], handler, subscribe_retries=3)

    with capture_logs() as logs:
        await manager.run()

    location_attempts = [f for f, _ in client.subscribe_calls if f == LOCATION_FILTER]
    assert len(location_attempts) == 3
    assert (STATE_FILTER, 1) in client.subscribe_calls
    assert handler.received == [("drone/A/state", b"{}")]
    gave_up = next(e for e in logs if e["event"] == "bus.subscribe_gave_up")
    assert gave_up["topic"] == LOCATION_FILTER
    assert gave_up["log_level"] == "error"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload,expected", [
    (b"raw", b"raw"),
    (bytearray(b"raw"), b"raw"),
    ("text", b"text"),
    (None, b""),
])
async def test_payload_is_always_bytes(payload, expected):
    client = FakeClient([("drone/A/location", payload)])
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([client], handler)

    await manager.run()

    assert handler.received == [("drone/A/location", expected)]
    assert isinstance(handler.received[0][1], bytes)


@pytest.mark.asyncio
async def test_cancel_interrupts_poll_and_resets_state():
    client = FakeClient(block=True)
    handler = RecordingHandler()
    manager = make_manager([client], handler)

    task = asyncio.create_task(manager.run())
    for _ in range(10):
        await asyncio.sleep(0)
        if manager.state is ConnectionState.CONNECTED:
            break
    assert manager.state is ConnectionState.CONNECTED

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert manager.state is ConnectionState.DISCONNECTED
    assert client.exited


def test_stats_before_run():
    manager = ConnectionManager(fast_config(), RecordingHandler())
    stats = manager.get_stats()
    assert stats["state"] == "disconnected"
    assert stats["connects"] == 0
    assert stats["connected_at"] is None


def test_default_tls_context_verifies_peers():
    context = build_tls_context(None)
    assert isinstance(context, ssl.SSLContext)
    assert context.verify_mode == ssl.CERT_REQUIRED


@pytest.mark.asyncio
async def test_create_client_builds_aiomqtt_client():
    client = create_client(fast_config(username="u", password="p", client_id="bridge-1"))
    assert isinstance(client, aiomqtt.Client)


# ─── Bad TLS material and unexpected errors ─────────────

DER_GARBAGE = b"\x30\x82\x03\x0b\xff\xfe"


def test_der_ca_bytes_are_not_decoded_as_text():
    # Non-ASCII DER bytes go to OpenSSL as-is; a broken cert is an SSLError.
    with pytest.raises(ssl.SSLError):
        build_tls_context(DER_GARBAGE)


@pytest.mark.asyncio
async def test_unusable_ca_certificate_does_not_end_the_loop():
    working = FakeClient([("drone/A/location", b"[]")])
    attempts = []

    def factory(cfg):
        attempts.append(cfg)
        if len(attempts) == 1:
            return create_client(cfg)
        return working

    handler = RecordingHandler(stop_on="drone/A/location")
    manager = ConnectionManager(
        fast_config(ca_cert=DER_GARBAGE), handler, client_factory=factory
    )
    handler.manager = manager

    await asyncio.wait_for(manager.run(), timeout=5)

    assert len(attempts) == 2
    assert handler.received == [("drone/A/location", b"[]")]
    assert manager.stats.errors == 1


@pytest.mark.asyncio
async def test_unexpected_error_is_logged_and_retried():
    broken = FakeClient(fail_on_enter=RuntimeError("client bug"))
    working = FakeClient([("drone/A/location", b"[]")])
    handler = RecordingHandler(stop_on="drone/A/location")
    manager = make_manager([broken, working], handler)

    with capture_logs() as logs:
        await asyncio.wait_for(manager.run(), timeout=5)

    entry = next(e for e in logs if e["event"] == "bus.unexpected_error")
    assert entry["log_level"] == "error"
    assert manager.stats.connects == 1
    assert manager.stats.reconnects == 1
    assert manager.state is ConnectionState.DISCONNECTED
