# src/tuichat/client/store.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from tuichat.net.messages import (
    MemberInfo,
    Members,
    MessageEdited,
    MessageRemoved,
    NewMember,
    NewMessage,
    RemoveMember,
    RequestSelfMember,
    SelfMember,
    ServerInfo,
    ServerPacket,
)

UNKNOWN = "UNKNOWN"
PENDING = "PENDING"
RESOLVED = "RESOLVED"

MessageKey = Tuple[UUID, UUID]


@dataclass(frozen=True, slots=True)
class SelfIdentity:
    """What the client knows about its own server-assigned member id."""

    status: str = UNKNOWN
    requested_at: Optional[float] = None
    member_id: Optional[UUID] = None

    @classmethod
    def pending(cls, now: float) -> "SelfIdentity":
        return cls(status=PENDING, requested_at=float(now))

    @classmethod
    def resolved(cls, member_id: UUID) -> "SelfIdentity":
        return cls(status=RESOLVED, member_id=member_id)

    @property
    def is_resolved(self) -> bool:
        return self.status == RESOLVED


@dataclass(frozen=True, slots=True)
class MessageRecord:
    sender_id: UUID
    message_id: UUID
    body: str
    received_at: datetime

    @property
    def key(self) -> MessageKey:
        return (self.sender_id, self.message_id)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    sender_id: UUID
    message_id: UUID
    received_at: datetime


class ReconciliationStore:
    """
    Client-side view rebuilt from server events.

    apply() only mutates local state; it never does I/O. Messages live in a
    two-level map (sender -> message id -> record) and the history keeps
    receive order. A repeated NewMessage overwrites the body in place, so
    the same key never shows up twice in history. Removed messages keep
    their history slot and are skipped by history().
    """

    def __init__(
        self,
        *,
        self_member_retry_s: float = 1.0,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.self_member_retry_s = float(self_member_retry_s)
        self._wall_clock = wall_clock

        self.messages: Dict[UUID, Dict[UUID, MessageRecord]] = {}
        self._history: List[HistoryEntry] = []
        self._history_index: Dict[MessageKey, HistoryEntry] = {}

        self.self_identity = SelfIdentity()
        self.server_name: Optional[str] = None
        self.members: Dict[UUID, Optional[str]] = {}

    # ----------------------------
    # Event application
    # ----------------------------

    def apply(self, event: ServerPacket) -> None:
        if isinstance(event, NewMessage):
            self._on_new_message(event)
        elif isinstance(event, MessageEdited):
            rec = self.get(event.sender_id, event.message_id)
            if rec is not None:
                self.messages[event.sender_id][event.message_id] = dataclasses.replace(rec, body=event.body)
        elif isinstance(event, MessageRemoved):
            by_sender = self.messages.get(event.sender_id)
            if by_sender is not None:
                by_sender.pop(event.message_id, None)
        elif isinstance(event, SelfMember):
            self.self_identity = SelfIdentity.resolved(event.member_id)
        elif isinstance(event, ServerInfo):
            self.server_name = event.name
        elif isinstance(event, Members):
            self.members = {mid: self.members.get(mid) for mid in event.member_ids}
        elif isinstance(event, NewMember):
            self.members.setdefault(event.member_id, None)
        elif isinstance(event, RemoveMember):
            self.members.pop(event.member_id, None)
        elif isinstance(event, MemberInfo):
            for entry in event.members:
                self.members[entry.member_id] = entry.name

    def _on_new_message(self, event: NewMessage) -> None:
        key = (event.sender_id, event.message_id)
        by_sender = self.messages.setdefault(event.sender_id, {})
        existing = by_sender.get(event.message_id)
        if existing is not None:
            by_sender[event.message_id] = dataclasses.replace(existing, body=event.body)
            return

        entry = self._history_index.get(key)
        if entry is None:
            entry = HistoryEntry(event.sender_id, event.message_id, self._wall_clock())
            self._history.append(entry)
            self._history_index[key] = entry
        by_sender[event.message_id] = MessageRecord(event.sender_id, event.message_id, event.body, entry.received_at)

    # ----------------------------
    # Self identity
    # ----------------------------

    def poll_self_identity(self, now: float) -> Optional[RequestSelfMember]:
        """Return a RequestSelfMember to send, or None if nothing is due."""
        ident = self.self_identity
        if ident.status == RESOLVED:
            return None
        if ident.status == PENDING and ident.requested_at is not None:
            if now - ident.requested_at < self.self_member_retry_s:
                return None
        self.self_identity = SelfIdentity.pending(now)
        return RequestSelfMember()

    @property
    def self_member_id(self) -> Optional[UUID]:
        return self.self_identity.member_id

    def is_own(self, record: MessageRecord) -> bool:
        return self.self_identity.is_resolved and record.sender_id == self.self_identity.member_id

    # ----------------------------
    # Queries
    # ----------------------------

    def get(self, sender_id: UUID, message_id: UUID) -> Optional[MessageRecord]:
        return self.messages.get(sender_id, {}).get(message_id)

    def history(self) -> Iterator[MessageRecord]:
        for h in self._history:
            rec = self.get(h.sender_id, h.message_id)
            if rec is not None:
                yield rec

    def __len__(self) -> int:
        return sum(len(m) for m in self.messages.values())
