# src/tuichat/net/transport_memory.py
from __future__ import annotations

import asyncio
import itertools
from typing import List, Optional, Tuple

from tuichat.net.errors import TransportClosed
from tuichat.net.transport import PeerAddr

_EOF = None


class MemorySession:
    """
    One end of an in-process session pair.

    - Does not open sockets
    - Ordered, lossless delivery through an asyncio.Queue
    - Closing either end delivers end-of-session to both
    """

    def __init__(self, *, local: PeerAddr, remote: PeerAddr) -> None:
        self.local_address = local
        self._remote = remote
        self._inbox: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._peer: Optional[MemorySession] = None
        self._closed = False
        self._eof = False
        self.sent: List[bytes] = []

    @property
    def remote_address(self) -> PeerAddr:
        return self._remote

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, payload: bytes, *, ordered: bool = True) -> None:
        peer = self._peer
        if self._closed or peer is None or peer._closed:
            raise TransportClosed()
        data = bytes(payload)
        self.sent.append(data)
        peer._inbox.put_nowait(data)

    async def recv(self) -> bytes:
        if self._eof:
            raise TransportClosed()
        item = await self._inbox.get()
        if item is _EOF:
            self._eof = True
            raise TransportClosed()
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_EOF)
        if self._peer is not None and not self._peer._closed:
            self._peer._inbox.put_nowait(_EOF)


def memory_pair(
    client: PeerAddr = PeerAddr("client", 0, scheme="mem"),
    server: PeerAddr = PeerAddr("server", 0, scheme="mem"),
) -> Tuple[MemorySession, MemorySession]:
    """Return (client_end, server_end), already connected."""
    a = MemorySession(local=client, remote=server)
    b = MemorySession(local=server, remote=client)
    a._peer = b
    b._peer = a
    return a, b


class MemoryListener:
    """In-process accept loop. connect() hands the server end to `async for`."""

    def __init__(self, *, address: PeerAddr = PeerAddr("server", 0, scheme="mem")) -> None:
        self.address = address
        self._accepted: "asyncio.Queue[Optional[MemorySession]]" = asyncio.Queue()
        self._ports = itertools.count(1)

    async def connect(self, client: Optional[PeerAddr] = None) -> MemorySession:
        addr = client or PeerAddr("client", next(self._ports), scheme="mem")
        client_end, server_end = memory_pair(addr, self.address)
        self._accepted.put_nowait(server_end)
        return client_end

    def close(self) -> None:
        self._accepted.put_nowait(None)

    def __aiter__(self) -> "MemoryListener":
        return self

    async def __anext__(self) -> MemorySession:
        session = await self._accepted.get()
        if session is None:
            raise StopAsyncIteration
        return session
