# src/tuichat/net/transport.py
"""
tuichat — Transport interface (abstract I/O layer)

The session core only talks to the network through this narrow surface:

  - connect(addr) -> Session            (backend-specific function)
  - async for session in listener       (accept loop)
  - await session.send(payload, ordered=True)
  - await session.recv() -> bytes        (raises TransportClosed at end of session)
  - session.remote_address
  - await session.close()

Backends are responsible for framing and delivery. Any failure surfaces as
tuichat.net.errors.TransportError; the session core treats it as fatal.

This module is pure structure: no sockets here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class PeerAddr:
    """
    Transport address of one end of a session.

    Examples:
      - PeerAddr("1.2.3.4", 13331)              -> tcp://1.2.3.4:13331
      - PeerAddr("::1", 13331)                  -> tcp://[::1]:13331
      - PeerAddr("client-1", 0, scheme="mem")   -> mem://client-1:0
    """

    host: str
    port: int
    scheme: str = "tcp"

    @property
    def uri(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{int(self.port)}"

    def __str__(self) -> str:
        return self.uri


@runtime_checkable
class Session(Protocol):
    """A live, ordered, message-oriented connection to a single peer."""

    @property
    def remote_address(self) -> PeerAddr: ...

    async def send(self, payload: bytes, *, ordered: bool = True) -> None: ...

    async def recv(self) -> bytes: ...

    async def close(self) -> None: ...


@runtime_checkable
class Listener(Protocol):
    """Accept loop: yields one Session per inbound connection."""

    def __aiter__(self) -> AsyncIterator[Session]: ...
