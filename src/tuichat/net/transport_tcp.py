# src/tuichat/net/transport_tcp.py
"""
tuichat — TCP Transport (Length-Prefixed Frames)

Frame format:
  [4-byte big-endian length][packet bytes]

Where packet bytes come from tuichat.net.codec.

TCP already gives us reliable, ordered delivery, so `ordered` is accepted
for interface compatibility and otherwise ignored. Safety rails:
  - fail-closed on oversized frames (never read past MAX_PACKET_BYTES)
  - every socket error becomes TransportError
"""

from __future__ import annotations

import asyncio
import logging
import struct
from typing import Optional

from tuichat.net.codec import MAX_PACKET_BYTES
from tuichat.net.errors import TransportClosed, TransportError
from tuichat.net.transport import PeerAddr
from tuichat.structured_logging import log_event

log = logging.getLogger("tuichat.net")

_LEN = struct.Struct(">I")


def _addr_from_peername(peername, *, fallback: str = "unknown") -> PeerAddr:
    if isinstance(peername, (tuple, list)) and len(peername) >= 2:
        return PeerAddr(str(peername[0]), int(peername[1]))
    return PeerAddr(fallback, 0)


class TcpSession:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        max_frame_bytes: int = MAX_PACKET_BYTES,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.max_frame_bytes = int(max_frame_bytes)
        self._addr = _addr_from_peername(writer.get_extra_info("peername"))
        self._closed = asyncio.Event()

    @property
    def remote_address(self) -> PeerAddr:
        return self._addr

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, payload: bytes, *, ordered: bool = True) -> None:
        if self.closed:
            raise TransportClosed()
        if len(payload) > self.max_frame_bytes:
            raise TransportError("frame_too_large", f"frame of {len(payload)} bytes exceeds {self.max_frame_bytes}")
        try:
            self._writer.write(_LEN.pack(len(payload)) + bytes(payload))
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError("send_failed", f"send to {self._addr} failed: {e}") from e

    async def recv(self) -> bytes:
        if self.closed:
            raise TransportClosed()
        try:
            (n,) = _LEN.unpack(await self._reader.readexactly(_LEN.size))
            if n > self.max_frame_bytes:
                log_event(log, "frame_rejected", level=logging.WARNING, peer=self._addr, declared_bytes=n)
                raise TransportError("oversize_frame", f"declared frame of {n} bytes exceeds {self.max_frame_bytes}")
            return await self._reader.readexactly(n)
        except asyncio.IncompleteReadError as e:
            raise TransportClosed(f"{self._addr} closed the connection") from e
        except (ConnectionError, OSError) as e:
            raise TransportError("recv_failed", f"recv from {self._addr} failed: {e}") from e

    async def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass

    async def wait_closed(self) -> None:
        await self._closed.wait()


async def connect_tcp(addr: PeerAddr, *, max_frame_bytes: int = MAX_PACKET_BYTES) -> TcpSession:
    try:
        reader, writer = await asyncio.open_connection(addr.host, int(addr.port))
    except OSError as e:
        raise TransportError("connect_failed", f"connect to {addr} failed: {e}") from e
    return TcpSession(reader, writer, max_frame_bytes=max_frame_bytes)


class TcpListener:
    """
    Accept loop over asyncio.start_server.

    Usage:
        async with TcpListener("0.0.0.0", 13331) as listener:
            async for session in listener:
                ...
    """

    def __init__(self, host: str, port: int, *, max_frame_bytes: int = MAX_PACKET_BYTES) -> None:
        self.host = host
        self.port = int(port)
        self.max_frame_bytes = int(max_frame_bytes)
        self._server: Optional[asyncio.AbstractServer] = None
        self._accepted: "asyncio.Queue[Optional[TcpSession]]" = asyncio.Queue()

    @property
    def bound_port(self) -> int:
        """Actual port (useful when binding port 0)."""
        if self._server is None or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_connection, self.host, self.port)

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session = TcpSession(reader, writer, max_frame_bytes=self.max_frame_bytes)
        log_event(log, "tcp_accepted", level=logging.DEBUG, peer=session.remote_address)
        await self._accepted.put(session)
        # Keep the stream handler alive for the lifetime of the session.
        await session.wait_closed()

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        self._server = None
        self._accepted.put_nowait(None)

    async def __aenter__(self) -> "TcpListener":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def __aiter__(self) -> "TcpListener":
        return self

    async def __anext__(self) -> TcpSession:
        session = await self._accepted.get()
        if session is None:
            raise StopAsyncIteration
        return session
