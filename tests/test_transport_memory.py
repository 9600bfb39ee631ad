from __future__ import annotations

import asyncio

import pytest

from tuichat.net.errors import TransportClosed
from tuichat.net.transport import Listener, PeerAddr, Session
from tuichat.net.transport_memory import MemoryListener, memory_pair


def test_peer_addr_uri() -> None:
    assert PeerAddr("1.2.3.4", 13331).uri == "tcp://1.2.3.4:13331"
    assert str(PeerAddr("::1", 13331)) == "tcp://[::1]:13331"
    assert PeerAddr("c", 0, scheme="mem").uri == "mem://c:0"


def test_pair_delivers_in_order_and_close_ends_both_sides() -> None:
    async def go() -> None:
        a, b = memory_pair()
        assert isinstance(a, Session)
        assert a.remote_address.host == "server"
        assert b.remote_address.host == "client"

        for i in range(3):
            await a.send(bytes([i]))
        assert [await b.recv() for _ in range(3)] == [b"\x00", b"\x01", b"\x02"]
        assert a.sent == [b"\x00", b"\x01", b"\x02"]

        await b.close()
        with pytest.raises(TransportClosed):
            await a.recv()
        with pytest.raises(TransportClosed):
            await a.send(b"late")
        with pytest.raises(TransportClosed):
            await b.recv()

    asyncio.run(go())


def test_listener_hands_out_server_ends() -> None:
    async def go() -> None:
        listener = MemoryListener()
        assert isinstance(listener, Listener)
        c1 = await listener.connect()
        c2 = await listener.connect(PeerAddr("10.0.0.9", 5, scheme="mem"))
        listener.close()

        accepted = [s async for s in listener]
        assert [s.remote_address for s in accepted] == [c1.local_address, c2.local_address]
        assert c1.local_address != c2.local_address

        await c1.send(b"ping")
        assert await accepted[0].recv() == b"ping"

    asyncio.run(go())
