from __future__ import annotations

import asyncio
import struct

import pytest

from tuichat.client.session import ClientSession
from tuichat.config import ClientConfig, ServerConfig
from tuichat.net.errors import TransportClosed, TransportError
from tuichat.net.transport import PeerAddr
from tuichat.net.transport_tcp import TcpListener, connect_tcp
from tuichat.server.node import ChatServer


def test_frames_round_trip_over_loopback() -> None:
    async def go() -> None:
        async with TcpListener("127.0.0.1", 0) as listener:
            client = await connect_tcp(PeerAddr("127.0.0.1", listener.bound_port))
            server = await asyncio.wait_for(listener.__anext__(), 1.0)

            await client.send(b"hello")
            await client.send(b"")
            assert await asyncio.wait_for(server.recv(), 1.0) == b"hello"
            assert await asyncio.wait_for(server.recv(), 1.0) == b""
            assert server.remote_address.host == "127.0.0.1"

            await client.close()
            with pytest.raises(TransportClosed):
                await asyncio.wait_for(server.recv(), 1.0)
            await server.close()

    asyncio.run(go())


def test_oversize_declared_frame_fails_the_session() -> None:
    async def go() -> None:
        async with TcpListener("127.0.0.1", 0, max_frame_bytes=16) as listener:
            reader, writer = await asyncio.open_connection("127.0.0.1", listener.bound_port)
            server = await asyncio.wait_for(listener.__anext__(), 1.0)

            writer.write(struct.pack(">I", 17) + b"x" * 17)
            await writer.drain()
            with pytest.raises(TransportError) as ei:
                await asyncio.wait_for(server.recv(), 1.0)
            assert ei.value.code == "oversize_frame"

            writer.close()
            await server.close()

    asyncio.run(go())


def test_connect_to_closed_port_is_transport_error() -> None:
    async def go() -> None:
        async with TcpListener("127.0.0.1", 0) as listener:
            port = listener.bound_port
        with pytest.raises(TransportError):
            await connect_tcp(PeerAddr("127.0.0.1", port))

    asyncio.run(go())


def test_client_handshakes_with_server_over_tcp() -> None:
    async def go() -> None:
        server = ChatServer(ServerConfig(heartbeat_ms=50))
        async with TcpListener("127.0.0.1", 0) as listener:
            serve_task = asyncio.create_task(server.serve(listener))
            session = await connect_tcp(PeerAddr("127.0.0.1", listener.bound_port))
            client = ClientSession(session, cfg=ClientConfig(heartbeat_ms=50))
            run_task = asyncio.create_task(client.run())

            for _ in range(200):
                if client.store.self_identity.is_resolved:
                    break
                await asyncio.sleep(0.01)
            assert client.store.self_identity.is_resolved

            await session.close()
            ended = await asyncio.wait_for(run_task, 2.0)
            assert ended.kind == "transport"
            await server.close()
        await asyncio.wait_for(serve_task, 1.0)

    asyncio.run(go())
