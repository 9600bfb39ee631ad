# src/tuichat/net/messages.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Optional, Tuple, Union
from uuid import UUID

from tuichat.net.compat import CompatibilityFingerprint, Incompatibility

MemberId = UUID
MessageId = UUID

# Unicode White_Space. str.strip() with no argument also removes \x1c-\x1f.
WHITESPACE = (
    "\t\n\x0b\x0c\r \x85\xa0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000"
)


def trim_body(body: str) -> str:
    """Strip leading and trailing Unicode White_Space from a message body."""
    return body.strip(WHITESPACE)


# ----------------------------
# Wire tags
#
# Values are the on-wire variant indices, in declaration order.
# INIT, ClientInfo, Success and Fail must stay first forever: that is what
# lets an old peer detect an incompatible new one before full decode.
# ----------------------------


class Phase(IntEnum):
    INIT = 0
    CHAT = 1


class ClientInitTag(IntEnum):
    CLIENT_INFO = 0


class ClientChatTag(IntEnum):
    REQUEST_MEMBERS = 0
    REQUEST_SELF_MEMBER = 1
    SEND_MESSAGE = 2
    EDIT_MESSAGE = 3
    REMOVE_MESSAGE = 4
    KEEP_ALIVE = 5


class ServerInitTag(IntEnum):
    SUCCESS = 0
    FAIL = 1


class ServerChatTag(IntEnum):
    SERVER_INFO = 0
    SELF_MEMBER = 1
    MEMBERS = 2
    NEW_MEMBER = 3
    REMOVE_MEMBER = 4
    MEMBER_INFO = 5
    NEW_MESSAGE = 6
    EDIT_MESSAGE = 7
    REMOVE_MESSAGE = 8
    KEEP_ALIVE = 9
    INVALID_STATE = 10


class FailKind(IntEnum):
    INVALID_STATE = 0
    INVALID_PACKET = 1
    COMPATIBILITY = 2
    ALREADY_CONNECTED = 3
    CUSTOM = 4


@dataclass(frozen=True, slots=True)
class InitFailure:
    """Why the server declined the Init phase."""

    kind: FailKind
    incompatibility: Optional[Incompatibility] = None
    message: Optional[str] = None

    def __post_init__(self) -> None:
        # A custom failure always carries text on the wire, possibly empty.
        if self.kind == FailKind.CUSTOM and self.message is None:
            object.__setattr__(self, "message", "")

    def __str__(self) -> str:
        if self.kind == FailKind.INVALID_STATE:
            return "Invalid state (desync)"
        if self.kind == FailKind.INVALID_PACKET:
            return "Invalid packet"
        if self.kind == FailKind.COMPATIBILITY:
            return str(self.incompatibility)
        if self.kind == FailKind.ALREADY_CONNECTED:
            return "Already connected"
        return f"Server message: {self.message}"


# ----------------------------
# Client -> server
# ----------------------------


@dataclass(frozen=True, slots=True)
class ClientPacketBase:
    PHASE: ClassVar[Phase]
    TAG: ClassVar[int]


@dataclass(frozen=True, slots=True)
class ClientInfo(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.INIT
    TAG: ClassVar[int] = ClientInitTag.CLIENT_INFO

    fingerprint: CompatibilityFingerprint


@dataclass(frozen=True, slots=True)
class RequestMembers(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.REQUEST_MEMBERS


@dataclass(frozen=True, slots=True)
class RequestSelfMember(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.REQUEST_SELF_MEMBER


@dataclass(frozen=True, slots=True)
class SendMessage(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.SEND_MESSAGE

    message_id: MessageId
    body: str


@dataclass(frozen=True, slots=True)
class EditMessage(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.EDIT_MESSAGE

    message_id: MessageId
    body: str


@dataclass(frozen=True, slots=True)
class RemoveMessage(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.REMOVE_MESSAGE

    message_id: MessageId


@dataclass(frozen=True, slots=True)
class ClientKeepAlive(ClientPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ClientChatTag.KEEP_ALIVE


# ----------------------------
# Server -> client
# ----------------------------


@dataclass(frozen=True, slots=True)
class ServerPacketBase:
    PHASE: ClassVar[Phase]
    TAG: ClassVar[int]


@dataclass(frozen=True, slots=True)
class ServerSuccess(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.INIT
    TAG: ClassVar[int] = ServerInitTag.SUCCESS

    fingerprint: CompatibilityFingerprint


@dataclass(frozen=True, slots=True)
class ServerFail(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.INIT
    TAG: ClassVar[int] = ServerInitTag.FAIL

    reason: InitFailure


@dataclass(frozen=True, slots=True)
class ServerInfo(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.SERVER_INFO

    name: str


@dataclass(frozen=True, slots=True)
class SelfMember(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.SELF_MEMBER

    member_id: MemberId


@dataclass(frozen=True, slots=True)
class Members(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.MEMBERS

    member_ids: Tuple[MemberId, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class NewMember(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.NEW_MEMBER

    member_id: MemberId


@dataclass(frozen=True, slots=True)
class RemoveMember(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.REMOVE_MEMBER

    member_id: MemberId


@dataclass(frozen=True, slots=True)
class MemberEntry:
    member_id: MemberId
    name: str


@dataclass(frozen=True, slots=True)
class MemberInfo(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.MEMBER_INFO

    members: Tuple[MemberEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class NewMessage(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.NEW_MESSAGE

    sender_id: MemberId
    message_id: MessageId
    body: str


@dataclass(frozen=True, slots=True)
class MessageEdited(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.EDIT_MESSAGE

    sender_id: MemberId
    message_id: MessageId
    body: str


@dataclass(frozen=True, slots=True)
class MessageRemoved(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.REMOVE_MESSAGE

    sender_id: MemberId
    message_id: MessageId


@dataclass(frozen=True, slots=True)
class ServerKeepAlive(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.KEEP_ALIVE


@dataclass(frozen=True, slots=True)
class InvalidState(ServerPacketBase):
    PHASE: ClassVar[Phase] = Phase.CHAT
    TAG: ClassVar[int] = ServerChatTag.INVALID_STATE


# ----------------------------
# Forward compatibility
# ----------------------------


@dataclass(frozen=True, slots=True)
class UnknownPacket:
    """A variant this build does not know.

    envelope is the raw top-level tag. variant is the raw sub-tag, or None
    when the envelope tag itself was not recognized.
    """

    envelope: int
    variant: Optional[int] = None

    @property
    def is_chat(self) -> bool:
        return self.envelope == Phase.CHAT


ClientPacket = Union[
    ClientInfo,
    RequestMembers,
    RequestSelfMember,
    SendMessage,
    EditMessage,
    RemoveMessage,
    ClientKeepAlive,
    UnknownPacket,
]

ServerPacket = Union[
    ServerSuccess,
    ServerFail,
    ServerInfo,
    SelfMember,
    Members,
    NewMember,
    RemoveMember,
    MemberInfo,
    NewMessage,
    MessageEdited,
    MessageRemoved,
    ServerKeepAlive,
    InvalidState,
    UnknownPacket,
]
