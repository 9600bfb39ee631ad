from __future__ import annotations

import asyncio
import time

from tuichat import metrics
from tuichat.client.session import ClientSession
from tuichat.config import ClientConfig, ServerConfig
from tuichat.net.messages import NewMessage
from tuichat.net.transport_memory import MemoryListener
from tuichat.server.node import ChatServer

CLIENT_CFG = ClientConfig(heartbeat_ms=50, self_member_retry_ms=200)


async def _wait_for(pred, timeout: float = 2.0) -> None:
    started = time.monotonic()
    while not pred():
        assert time.monotonic() - started < timeout
        await asyncio.sleep(0.01)


def test_two_clients_chat_through_the_server() -> None:
    async def go() -> None:
        server = ChatServer(ServerConfig(heartbeat_ms=50))
        listener = MemoryListener()
        serve_task = asyncio.create_task(server.serve(listener))

        events_a: asyncio.Queue = asyncio.Queue()
        events_b: asyncio.Queue = asyncio.Queue()
        alice = ClientSession(await listener.connect(), cfg=CLIENT_CFG, events=events_a)
        bob = ClientSession(await listener.connect(), cfg=CLIENT_CFG, events=events_b)
        runs = [asyncio.create_task(alice.run()), asyncio.create_task(bob.run())]

        await _wait_for(lambda: alice.store.self_identity.is_resolved and bob.store.self_identity.is_resolved)
        assert alice.store.self_member_id != bob.store.self_member_id
        assert server.live_sessions == 2

        assert await alice.send_message("    ") is None
        mid = await alice.send_message("  hello bob  ")

        await _wait_for(lambda: len(bob.store) == 1 and len(alice.store) == 1)
        [seen_by_bob] = list(bob.store.history())
        assert seen_by_bob.message_id == mid
        assert seen_by_bob.body == "hello bob"
        assert seen_by_bob.sender_id == alice.store.self_member_id
        assert not bob.store.is_own(seen_by_bob)

        [seen_by_alice] = list(alice.store.history())
        assert alice.store.is_own(seen_by_alice)

        mirrored = []
        while not events_b.empty():
            mirrored.append(events_b.get_nowait())
        assert [p for p in mirrored if isinstance(p, NewMessage)] == [
            NewMessage(alice.store.self_member_id, mid, "hello bob")
        ]
        assert metrics.counter("messages_published") == 1

        await alice.session.close()
        await bob.session.close()
        ended = await asyncio.wait_for(asyncio.gather(*runs), 1.0)
        assert [e.kind for e in ended] == ["transport", "transport"]

        await _wait_for(lambda: server.live_sessions == 0)
        assert len(server.bus) == 0
        assert len(server.registry) == 0

        listener.close()
        await asyncio.wait_for(serve_task, 1.0)

    asyncio.run(go())


def test_server_close_cancels_live_sessions() -> None:
    async def go() -> None:
        server = ChatServer(ServerConfig(heartbeat_ms=50))
        listener = MemoryListener()
        serve_task = asyncio.create_task(server.serve(listener))

        client = ClientSession(await listener.connect(), cfg=CLIENT_CFG)
        run_task = asyncio.create_task(client.run())
        await _wait_for(lambda: client.store.self_identity.is_resolved)

        await server.close()
        assert server.live_sessions == 0
        assert len(server.bus) == 0

        ended = await asyncio.wait_for(run_task, 1.0)
        assert ended.kind == "transport"

        listener.close()
        await asyncio.wait_for(serve_task, 1.0)

    asyncio.run(go())
