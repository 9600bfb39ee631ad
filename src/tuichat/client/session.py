# src/tuichat/client/session.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID, uuid4

from tuichat.client.store import ReconciliationStore
from tuichat.config import ClientConfig
from tuichat.net.codec import decode_server_packet, encode_client_packet
from tuichat.net.compat import PROTOCOL_FINGERPRINT, CompatibilityFingerprint, require_compatible
from tuichat.net.errors import (
    HandshakeRejected,
    ProtocolViolation,
    TransportError,
    WireEncodeError,
)
from tuichat.net.messages import (
    ClientInfo,
    ClientKeepAlive,
    ClientPacket,
    InvalidState,
    Phase,
    SendMessage,
    ServerFail,
    ServerKeepAlive,
    ServerPacket,
    ServerSuccess,
    UnknownPacket,
    trim_body,
)
from tuichat.net.select import TICK, EventSelect
from tuichat.net.transport import Session
from tuichat.structured_logging import log_event

log = logging.getLogger("tuichat.client")

TRANSPORT = "transport"
PROTOCOL = "protocol"
NEGOTIATED = "negotiated"


@dataclass(frozen=True, slots=True)
class SessionEnded:
    """How a client session finished. kind is transport, protocol or negotiated."""

    kind: str
    reason: str


class ClientSession:
    """
    Client side of one connection: handshake, then the chat loop.

    The UI feeds `outbound` (usually through send_message) and reads
    `events`, which mirrors every chat packet applied to the store.
    run() returns a SessionEnded instead of raising; reconnecting is up to
    the caller.
    """

    def __init__(
        self,
        session: Session,
        *,
        cfg: Optional[ClientConfig] = None,
        store: Optional[ReconciliationStore] = None,
        events: "Optional[asyncio.Queue[ServerPacket]]" = None,
        fingerprint: CompatibilityFingerprint = PROTOCOL_FINGERPRINT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.cfg = cfg or ClientConfig()
        self.store = store or ReconciliationStore(self_member_retry_s=self.cfg.self_member_retry_s)
        self.events = events
        self.fingerprint = fingerprint
        self._clock = clock

        self.outbound: "asyncio.Queue[ClientPacket]" = asyncio.Queue(maxsize=max(1, self.cfg.outbound_capacity))
        self.server_fingerprint: Optional[CompatibilityFingerprint] = None
        self.state = "handshaking"

    async def send_message(self, body: str) -> Optional[UUID]:
        """Queue a chat message.

        Whitespace-only input and messages too large for one packet are
        dropped and return None; the session keeps running.
        """
        if not trim_body(body):
            return None
        pkt = SendMessage(message_id=uuid4(), body=body)
        try:
            encode_client_packet(pkt)
        except WireEncodeError as e:
            log_event(log, "message_dropped", level=logging.WARNING, message_id=pkt.message_id, reason=e.code)
            return None
        await self.outbound.put(pkt)
        return pkt.message_id

    async def run(self) -> SessionEnded:
        peer = self.session.remote_address
        try:
            await self._handshake()
            self.state = "chatting"
            await self._chat()
        except HandshakeRejected as e:
            ended = SessionEnded(NEGOTIATED, e.reason)
            log_event(log, "handshake_rejected", peer=peer, reason=e.reason)
        except (ProtocolViolation, WireEncodeError) as e:
            ended = SessionEnded(PROTOCOL, str(e))
            log_event(log, "protocol_violation", level=logging.WARNING, peer=peer, code=e.code)
        except TransportError as e:
            ended = SessionEnded(TRANSPORT, str(e))
        finally:
            self.state = "ended"
            await self.session.close()
        log_event(log, "session_ended", peer=peer, kind=ended.kind, reason=ended.reason)
        return ended

    async def _send(self, pkt: ClientPacket) -> None:
        await self.session.send(encode_client_packet(pkt))

    async def _handshake(self) -> None:
        await self._send(ClientInfo(self.fingerprint))
        pkt = decode_server_packet(await self.session.recv())
        if pkt is None:
            raise ProtocolViolation("invalid_packet", "undecodable handshake reply")
        if isinstance(pkt, ServerFail):
            raise HandshakeRejected(str(pkt.reason))
        if not isinstance(pkt, ServerSuccess):
            raise ProtocolViolation("invalid_state", f"expected Success or Fail, got {type(pkt).__name__}")

        require_compatible(self.fingerprint, pkt.fingerprint)
        self.server_fingerprint = pkt.fingerprint
        log_event(log, "handshake_ok", peer=self.session.remote_address, server_version=pkt.fingerprint.version)

    async def _chat(self) -> None:
        self._drive_self_identity()
        select = EventSelect(
            {"outbound": self.outbound.get, "inbound": self.session.recv},
            tick_s=self.cfg.heartbeat_s,
            clock=self._clock,
        )
        try:
            while True:
                name, value = await select.next()
                if name == TICK:
                    await self._send(ClientKeepAlive())
                    self._drive_self_identity()
                elif name == "outbound":
                    await self._send(value)
                else:
                    self._handle(value)
        finally:
            select.close()

    def _drive_self_identity(self) -> None:
        pkt = self.store.poll_self_identity(self._clock())
        if pkt is None:
            return
        try:
            self.outbound.put_nowait(pkt)
        except asyncio.QueueFull:
            # Still pending; retried after the next interval.
            pass

    def _handle(self, payload: bytes) -> None:
        pkt = decode_server_packet(payload)
        if pkt is None:
            raise ProtocolViolation("undecodable", "undecodable chat packet")
        if isinstance(pkt, UnknownPacket):
            if not pkt.is_chat:
                raise ProtocolViolation("invalid_state", "unknown envelope during chat")
            return
        if pkt.PHASE == Phase.INIT:
            raise ProtocolViolation("invalid_state", f"{type(pkt).__name__} during chat")
        if isinstance(pkt, InvalidState):
            raise ProtocolViolation("invalid_state", "server reported invalid state")
        if isinstance(pkt, ServerKeepAlive):
            return

        self.store.apply(pkt)
        if self.events is not None:
            self.events.put_nowait(pkt)
