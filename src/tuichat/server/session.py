# src/tuichat/server/session.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from tuichat.config import ServerConfig
from tuichat.metrics import add_gauge, inc_counter
from tuichat.net.codec import decode_client_packet, encode_server_packet
from tuichat.net.compat import PROTOCOL_FINGERPRINT, CompatibilityFingerprint, incompatibility
from tuichat.net.errors import ChatError, HandshakeRejected, ProtocolViolation, WireEncodeError
from tuichat.net.messages import (
    ClientInfo,
    ClientPacket,
    FailKind,
    InitFailure,
    InvalidState,
    NewMessage,
    Phase,
    RequestSelfMember,
    SelfMember,
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
from tuichat.server.broadcast import BroadcastBus, Subscription
from tuichat.server.registry import ConnectionRegistry
from tuichat.structured_logging import log_event

log = logging.getLogger("tuichat.server")


class SessionState(str, Enum):
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    CHATTING = "chatting"
    TERMINATED = "terminated"


def _is_chat_packet(pkt: ClientPacket) -> bool:
    if isinstance(pkt, UnknownPacket):
        return pkt.is_chat
    return pkt.PHASE == Phase.CHAT


class ServerSessionHandler:
    """
    Drives one accepted connection from handshake to termination.

    run() never raises ChatError: every session-ending condition is logged
    and cleanup (registry entry, bus subscription, transport) always runs.
    """

    def __init__(
        self,
        session: Session,
        *,
        cfg: ServerConfig,
        bus: BroadcastBus,
        registry: ConnectionRegistry,
        fingerprint: CompatibilityFingerprint = PROTOCOL_FINGERPRINT,
    ) -> None:
        self.session = session
        self.cfg = cfg
        self.bus = bus
        self.registry = registry
        self.fingerprint = fingerprint

        self.state = SessionState.CONNECTING
        self.member_id: Optional[UUID] = None
        self.end_reason: Optional[str] = None
        self._subscription: Optional[Subscription] = None

    @property
    def host(self) -> str:
        return self.session.remote_address.host

    async def _send(self, pkt: ServerPacket) -> None:
        await self.session.send(encode_server_packet(pkt))

    async def run(self) -> None:
        peer = self.session.remote_address
        registered = False
        try:
            if self.cfg.reject_duplicate_addresses:
                if not self.registry.try_add(self.host):
                    inc_counter("sessions_rejected_duplicate")
                    log_event(log, "session_rejected", peer=peer, reason="already_connected")
                    self.end_reason = "already connected"
                    await self._send(ServerFail(InitFailure(FailKind.ALREADY_CONNECTED)))
                    return
            else:
                self.registry.add(self.host)
            registered = True
            inc_counter("sessions_accepted")
            add_gauge("sessions_live", 1)

            self.state = SessionState.HANDSHAKING
            await self._handshake()

            self.state = SessionState.CHATTING
            await self._chat()
        except ProtocolViolation as e:
            inc_counter("protocol_violations")
            log_event(log, "protocol_violation", level=logging.WARNING, peer=peer, member_id=self.member_id, code=e.code)
            self.end_reason = f"protocol: {e}"
        except HandshakeRejected as e:
            inc_counter("handshakes_rejected")
            log_event(log, "handshake_rejected", peer=peer, reason=e.reason)
            self.end_reason = f"negotiated: {e.reason}"
        except ChatError as e:
            self.end_reason = f"transport: {e}"
        finally:
            self.state = SessionState.TERMINATED
            if registered:
                self.registry.remove(self.host)
                add_gauge("sessions_live", -1)
            if self.member_id is not None:
                self.bus.unsubscribe(self.member_id)
            await self.session.close()
            log_event(log, "session_ended", peer=peer, member_id=self.member_id, reason=self.end_reason)

    async def _handshake(self) -> None:
        pkt = decode_client_packet(await self.session.recv())
        if pkt is None:
            await self._send(ServerFail(InitFailure(FailKind.INVALID_PACKET)))
            raise ProtocolViolation("invalid_packet", "undecodable handshake packet")
        if not isinstance(pkt, ClientInfo):
            await self._send(ServerFail(InitFailure(FailKind.INVALID_STATE)))
            raise ProtocolViolation("invalid_state", f"expected ClientInfo, got {type(pkt).__name__}")

        reason = incompatibility(self.fingerprint, pkt.fingerprint)
        if reason is not None:
            await self._send(ServerFail(InitFailure(FailKind.COMPATIBILITY, incompatibility=reason)))
            raise HandshakeRejected(str(reason))

        await self._send(ServerSuccess(self.fingerprint))
        self.member_id = uuid4()
        self._subscription = self.bus.subscribe(self.member_id)
        log_event(log, "handshake_ok", peer=self.session.remote_address, member_id=self.member_id)

    async def _chat(self) -> None:
        assert self._subscription is not None
        select = EventSelect(
            {"inbound": self.session.recv, "broadcast": self._subscription.recv},
            tick_s=self.cfg.heartbeat_s,
        )
        try:
            while True:
                name, value = await select.next()
                if name == TICK:
                    await self._send(ServerKeepAlive())
                elif name == "inbound":
                    await self._dispatch(value)
                else:
                    await self._send(value)
        finally:
            select.close()

    async def _dispatch(self, payload: bytes) -> None:
        pkt = decode_client_packet(payload)
        if pkt is None:
            raise ProtocolViolation("undecodable", "undecodable chat packet")
        if not _is_chat_packet(pkt):
            await self._send(InvalidState())
            raise ProtocolViolation("invalid_state", f"{type(pkt).__name__} during chat")

        if isinstance(pkt, SendMessage):
            self._publish_message(pkt)
        elif isinstance(pkt, RequestSelfMember):
            assert self.member_id is not None
            await self._send(SelfMember(self.member_id))
        # KeepAlive, member/edit/remove requests and unknown chat variants are no-ops.

    def _publish_message(self, pkt: SendMessage) -> None:
        assert self.member_id is not None
        body = trim_body(pkt.body)
        if not body:
            inc_counter("messages_dropped_empty")
            log_event(log, "message_dropped", level=logging.DEBUG, member_id=self.member_id, message_id=pkt.message_id, reason="empty")
            return

        event = NewMessage(sender_id=self.member_id, message_id=pkt.message_id, body=body)
        try:
            encode_server_packet(event)
        except WireEncodeError as e:
            log_event(log, "message_dropped", level=logging.WARNING, member_id=self.member_id, message_id=pkt.message_id, reason=e.code)
            return

        delivered = self.bus.publish(event)
        inc_counter("messages_published")
        log_event(log, "message_published", level=logging.DEBUG, member_id=self.member_id, message_id=pkt.message_id, delivered=delivered)
