# src/tuichat/net/errors.py
from __future__ import annotations

from typing import Optional


class ChatError(RuntimeError):
    """Base class for every session-ending condition in tuichat."""


class TransportError(ChatError):
    """Send/receive failure on the underlying transport. Always fatal for the session."""

    def __init__(self, code: str, msg: Optional[str] = None) -> None:
        super().__init__(msg or code)
        self.code = code


class TransportClosed(TransportError):
    """The peer (or we) closed the session; end of stream."""

    def __init__(self, msg: str = "session closed") -> None:
        super().__init__("closed", msg)


class BusOverflow(TransportError):
    """A broadcast subscriber using the disconnect policy fell behind."""

    def __init__(self, msg: str = "broadcast subscriber overflowed") -> None:
        super().__init__("bus_overflow", msg)


class ProtocolViolation(ChatError):
    """Peer sent an undecodable packet or a packet for the wrong phase."""

    def __init__(self, code: str, msg: Optional[str] = None) -> None:
        super().__init__(msg or code)
        self.code = code


class HandshakeError(ChatError):
    pass


class HandshakeRejected(HandshakeError):
    """Raised when a peer is incompatible or the handshake is refused."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class WireDecodeError(ChatError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code


class WireEncodeError(ChatError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
