"""Broadcast hub — fan-out, bounded backlog, lag, late joiners."""

import asyncio

import pytest

from dronebridge.bus.topics import BroadcastGroup
from dronebridge.realtime.hub import BroadcastHub, SubscriberLagged

FLIGHT = BroadcastGroup.FLIGHT
LOCATION = BroadcastGroup.LOCATION


def test_send_without_subscribers_is_a_noop():
    hub = BroadcastHub()
    assert hub.send(FLIGHT, "hello") == 0
    assert hub.subscriber_count(FLIGHT) == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        BroadcastHub(capacity=0)


@pytest.mark.asyncio
async def test_every_subscriber_gets_every_message():
    hub = BroadcastHub()
    a = hub.subscribe(FLIGHT)
    b = hub.register_viewer(FLIGHT)

    assert hub.send(FLIGHT, "m1") == 2
    assert hub.send(FLIGHT, "m2") == 2

    assert [await a.recv(), await a.recv()] == ["m1", "m2"]
    assert [await b.recv(), await b.recv()] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_groups_are_isolated():
    hub = BroadcastHub()
    flight = hub.subscribe(FLIGHT)
    location = hub.subscribe(LOCATION)

    hub.send(LOCATION, "loc")

    assert flight.pending == 0
    assert await location.recv() == "loc"


@pytest.mark.asyncio
async def test_late_subscriber_sees_nothing_sent_before():
    hub = BroadcastHub()
    early = hub.subscribe(FLIGHT)
    hub.send(FLIGHT, "before")
    late = hub.subscribe(FLIGHT)
    hub.send(FLIGHT, "after")

    assert await early.recv() == "before"
    assert await late.recv() == "after"
    assert late.pending == 0


@pytest.mark.asyncio
async def test_recv_waits_for_next_send():
    hub = BroadcastHub()
    sub = hub.subscribe(FLIGHT)

    waiter = asyncio.create_task(sub.recv())
    await asyncio.sleep(0)
    assert not waiter.done()

    hub.send(FLIGHT, "wake")
    assert await asyncio.wait_for(waiter, timeout=1) == "wake"


@pytest.mark.asyncio
async def test_overflow_drops_oldest_and_reports_lag():
    hub = BroadcastHub(capacity=3)
    sub = hub.subscribe(FLIGHT)

    for i in range(5):
        hub.send(FLIGHT, f"m{i}")

    with pytest.raises(SubscriberLagged) as exc:
        await sub.recv()
    assert exc.value.skipped == 2

    assert [await sub.recv() for _ in range(3)] == ["m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_stalled_subscriber_does_not_block_others():
    hub = BroadcastHub(capacity=4)
    stalled = hub.subscribe(FLIGHT)
    active = hub.subscribe(FLIGHT)

    received = []
    for i in range(20):
        hub.send(FLIGHT, f"m{i}")
        received.append(await active.recv())

    assert received == [f"m{i}" for i in range(20)]
    assert stalled.pending == 4


@pytest.mark.asyncio
async def test_close_unregisters_and_ends_iteration():
    hub = BroadcastHub()
    sub = hub.subscribe(LOCATION)
    hub.send(LOCATION, "last")
    sub.close()

    assert hub.subscriber_count(LOCATION) == 0
    assert hub.send(LOCATION, "ignored") == 0
    assert [m async for m in sub] == ["last"]


@pytest.mark.asyncio
async def test_hub_close_wakes_waiting_receivers():
    hub = BroadcastHub()
    sub = hub.subscribe(FLIGHT)

    collected = asyncio.create_task(_collect(sub))
    await asyncio.sleep(0)
    hub.close()

    assert await asyncio.wait_for(collected, timeout=1) == []
    assert sub.closed


async def _collect(sub):
    return [m async for m in sub]


def test_subscription_context_manager_closes():
    hub = BroadcastHub()
    with hub.subscribe(FLIGHT):
        assert hub.subscriber_count(FLIGHT) == 1
    assert hub.subscriber_count(FLIGHT) == 0
