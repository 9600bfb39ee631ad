from __future__ import annotations

import asyncio
import uuid

import pytest

from tuichat import metrics
from tuichat.net.errors import BusOverflow
from tuichat.net.messages import NewMessage
from tuichat.server.broadcast import BroadcastBus


def _msg(sender: uuid.UUID, n: int) -> NewMessage:
    return NewMessage(sender_id=sender, message_id=uuid.UUID(int=n), body=f"m{n}")


def test_publish_reaches_every_subscriber_in_order() -> None:
    async def go() -> None:
        bus = BroadcastBus()
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        subs = [bus.subscribe(k) for k in (a, b, c)]

        for n in range(5):
            assert bus.publish(_msg(a, n)) == 3

        for sub in subs:
            got = [await sub.recv() for _ in range(5)]
            assert [m.body for m in got] == ["m0", "m1", "m2", "m3", "m4"]

    asyncio.run(go())


def test_unsubscribed_keys_stop_receiving() -> None:
    async def go() -> None:
        bus = BroadcastBus()
        a, b = uuid.uuid4(), uuid.uuid4()
        bus.subscribe(a)
        sb = bus.subscribe(b)
        bus.unsubscribe(a)
        bus.unsubscribe(a)  # idempotent

        assert len(bus) == 1
        assert a not in bus
        assert bus.publish(_msg(b, 1)) == 1
        assert (await sb.recv()).body == "m1"

    asyncio.run(go())


def test_duplicate_subscription_is_rejected() -> None:
    async def go() -> None:
        bus = BroadcastBus()
        k = uuid.uuid4()
        bus.subscribe(k)
        with pytest.raises(ValueError):
            bus.subscribe(k)

    asyncio.run(go())


def test_recv_waits_for_a_later_publish() -> None:
    async def go() -> None:
        bus = BroadcastBus()
        k = uuid.uuid4()
        sub = bus.subscribe(k)
        pending = asyncio.ensure_future(sub.recv())
        await asyncio.sleep(0)
        assert not pending.done()
        bus.publish(_msg(k, 7))
        assert (await asyncio.wait_for(pending, 1.0)).body == "m7"

    asyncio.run(go())


def test_drop_oldest_keeps_newest_events() -> None:
    async def go() -> None:
        bus = BroadcastBus(capacity=2, policy="drop_oldest")
        k = uuid.uuid4()
        sub = bus.subscribe(k)
        for n in range(4):
            assert bus.publish(_msg(k, n)) == 1

        assert sub.dropped == 2
        assert metrics.counter("bus_events_dropped") == 2
        assert [(await sub.recv()).body for _ in range(2)] == ["m2", "m3"]

    asyncio.run(go())


def test_disconnect_policy_overflows_only_the_slow_subscriber() -> None:
    async def go() -> None:
        bus = BroadcastBus(capacity=4)
        slow = bus.subscribe("slow", capacity=1, policy="disconnect")
        fast = bus.subscribe("fast")

        assert bus.publish(_msg(uuid.uuid4(), 0)) == 2
        assert bus.publish(_msg(uuid.uuid4(), 1)) == 1

        assert slow.overflowed
        assert metrics.counter("bus_subscribers_overflowed") == 1
        with pytest.raises(BusOverflow):
            await slow.recv()
        assert [(await fast.recv()).body for _ in range(2)] == ["m0", "m1"]

    asyncio.run(go())


def test_disconnect_wakes_a_blocked_receiver() -> None:
    async def go() -> None:
        bus = BroadcastBus(capacity=1, policy="disconnect")
        sub = bus.subscribe("k")
        bus.publish(_msg(uuid.uuid4(), 0))
        assert (await sub.recv()).body == "m0"

        pending = asyncio.ensure_future(sub.recv())
        await asyncio.sleep(0)
        sub._overflowed.set()
        with pytest.raises(BusOverflow):
            await asyncio.wait_for(pending, 1.0)

    asyncio.run(go())


def test_unknown_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        BroadcastBus(policy="block")
