# src/tuichat/net/codec.py
from __future__ import annotations

import struct
from dataclasses import fields
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar
from uuid import UUID

from tuichat.net.compat import CompatibilityFingerprint, Incompatibility, IncompatibleKind, Version
from tuichat.net.errors import WireDecodeError, WireEncodeError
from tuichat.net.messages import (
    ClientInfo,
    ClientKeepAlive,
    ClientPacket,
    EditMessage,
    FailKind,
    InitFailure,
    InvalidState,
    MemberEntry,
    MemberInfo,
    Members,
    MessageEdited,
    MessageRemoved,
    NewMember,
    NewMessage,
    Phase,
    RemoveMember,
    RemoveMessage,
    RequestMembers,
    RequestSelfMember,
    SelfMember,
    SendMessage,
    ServerFail,
    ServerInfo,
    ServerKeepAlive,
    ServerPacket,
    ServerSuccess,
    UnknownPacket,
)

T = TypeVar("T")

UUID_BYTES = 16
MAX_MEMBERS = 0xFFFF
# Largest plausible packet: a full Members list, plus slack for envelope/tags.
MAX_PACKET_BYTES = 100 + UUID_BYTES * 2 * MAX_MEMBERS

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

# Smallest encoding of one MemberEntry: id + empty name length prefix.
_MEMBER_ENTRY_MIN = UUID_BYTES + _U64.size


# ---------------------------------------------------------------------
# Primitive writer / reader
# ---------------------------------------------------------------------


class _Writer:
    def __init__(self) -> None:
        self._buf = bytearray()

    def u16(self, v: int) -> None:
        try:
            self._buf += _U16.pack(v)
        except struct.error as e:
            raise WireEncodeError("invalid_int_field", f"u16 out of range: {v!r}") from e

    def u32(self, v: int) -> None:
        try:
            self._buf += _U32.pack(v)
        except struct.error as e:
            raise WireEncodeError("invalid_int_field", f"u32 out of range: {v!r}") from e

    def u64(self, v: int) -> None:
        try:
            self._buf += _U64.pack(v)
        except struct.error as e:
            raise WireEncodeError("invalid_int_field", f"u64 out of range: {v!r}") from e

    def uuid(self, v: UUID) -> None:
        if not isinstance(v, UUID):
            raise WireEncodeError("invalid_uuid_field", f"expected UUID, got {type(v).__name__}")
        self._buf += v.bytes

    def text(self, v: str) -> None:
        if not isinstance(v, str):
            raise WireEncodeError("invalid_str_field", f"expected str, got {type(v).__name__}")
        try:
            raw = v.encode("utf-8")
        except UnicodeEncodeError as e:
            raise WireEncodeError("invalid_utf8", f"text is not encodable as utf-8: {e}") from e
        self.u64(len(raw))
        self._buf += raw

    def count(self, n: int, limit: int) -> None:
        if n > limit:
            raise WireEncodeError("too_many_items", f"sequence of {n} items exceeds {limit}")
        self.u64(n)

    def finish(self) -> bytes:
        if len(self._buf) > MAX_PACKET_BYTES:
            raise WireEncodeError("oversize", f"packet of {len(self._buf)} bytes exceeds {MAX_PACKET_BYTES}")
        return bytes(self._buf)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._view = memoryview(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._view) - self._pos

    def _take(self, n: int) -> memoryview:
        if n > self.remaining:
            raise WireDecodeError("truncated", f"need {n} bytes, {self.remaining} left")
        chunk = self._view[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def u16(self) -> int:
        return _U16.unpack(self._take(_U16.size))[0]

    def u32(self) -> int:
        return _U32.unpack(self._take(_U32.size))[0]

    def u64(self) -> int:
        return _U64.unpack(self._take(_U64.size))[0]

    def uuid(self) -> UUID:
        return UUID(bytes=bytes(self._take(UUID_BYTES)))

    def text(self) -> str:
        # Length is checked against the buffer before anything is copied.
        n = self.u64()
        raw = self._take(n)
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise WireDecodeError("invalid_utf8", f"invalid utf-8: {e}") from e

    def count(self, limit: int, item_min_bytes: int) -> int:
        n = self.u64()
        if n > limit:
            raise WireDecodeError("too_many_items", f"sequence of {n} items exceeds {limit}")
        if n * item_min_bytes > self.remaining:
            raise WireDecodeError("truncated", f"sequence of {n} items cannot fit in {self.remaining} bytes")
        return n


# ---------------------------------------------------------------------
# Field kinds
# ---------------------------------------------------------------------


def _write_version(w: _Writer, v: Version) -> None:
    w.u16(v.major)
    w.u16(v.minor)
    w.u16(v.patch)


def _read_version(r: _Reader) -> Version:
    return Version(r.u16(), r.u16(), r.u16())


def _write_fingerprint(w: _Writer, fp: CompatibilityFingerprint) -> None:
    w.u64(fp.magic)
    _write_version(w, fp.version)


def _read_fingerprint(r: _Reader) -> CompatibilityFingerprint:
    magic = r.u64()
    return CompatibilityFingerprint(magic=magic, version=_read_version(r))


def _write_failure(w: _Writer, f: InitFailure) -> None:
    # Refuse fields the wire form cannot carry instead of dropping them.
    if f.kind != FailKind.COMPATIBILITY and f.incompatibility is not None:
        raise WireEncodeError("invalid_failure", f"{f.kind.name} failure cannot carry an incompatibility")
    if f.kind != FailKind.CUSTOM and f.message is not None:
        raise WireEncodeError("invalid_failure", f"{f.kind.name} failure cannot carry a message")

    w.u32(f.kind)
    if f.kind == FailKind.COMPATIBILITY:
        inc = f.incompatibility
        if inc is None:
            raise WireEncodeError("invalid_failure", "compatibility failure without a reason")
        w.u32(inc.kind)
        if inc.kind == IncompatibleKind.VERSION_MISMATCH:
            if inc.local is None or inc.remote is None:
                raise WireEncodeError("invalid_failure", "version mismatch without versions")
            _write_version(w, inc.local)
            _write_version(w, inc.remote)
        elif inc.local is not None or inc.remote is not None:
            raise WireEncodeError("invalid_failure", "invalid magic failure cannot carry versions")
    elif f.kind == FailKind.CUSTOM:
        w.text(f.message or "")


def _read_failure(r: _Reader) -> InitFailure:
    raw_kind = r.u32()
    try:
        kind = FailKind(raw_kind)
    except ValueError as e:
        raise WireDecodeError("unknown_fail_reason", f"Unknown fail reason: {raw_kind}") from e

    if kind == FailKind.COMPATIBILITY:
        raw_inc = r.u32()
        try:
            inc_kind = IncompatibleKind(raw_inc)
        except ValueError as e:
            raise WireDecodeError("unknown_incompatibility", f"Unknown incompatibility: {raw_inc}") from e
        if inc_kind == IncompatibleKind.VERSION_MISMATCH:
            local = _read_version(r)
            remote = _read_version(r)
            return InitFailure(kind, Incompatibility(inc_kind, local=local, remote=remote))
        return InitFailure(kind, Incompatibility(inc_kind))

    if kind == FailKind.CUSTOM:
        return InitFailure(kind, message=r.text())

    return InitFailure(kind)


def _write_uuids(w: _Writer, ids: Tuple[UUID, ...]) -> None:
    w.count(len(ids), MAX_MEMBERS)
    for i in ids:
        w.uuid(i)


def _read_uuids(r: _Reader) -> Tuple[UUID, ...]:
    n = r.count(MAX_MEMBERS, UUID_BYTES)
    return tuple(r.uuid() for _ in range(n))


def _write_members(w: _Writer, members: Tuple[MemberEntry, ...]) -> None:
    w.count(len(members), MAX_MEMBERS)
    for m in members:
        w.uuid(m.member_id)
        w.text(m.name)


def _read_members(r: _Reader) -> Tuple[MemberEntry, ...]:
    n = r.count(MAX_MEMBERS, _MEMBER_ENTRY_MIN)
    out = []
    for _ in range(n):
        member_id = r.uuid()
        out.append(MemberEntry(member_id=member_id, name=r.text()))
    return tuple(out)


_WRITERS: Dict[str, Callable[[_Writer, Any], None]] = {
    "uuid": _Writer.uuid,
    "text": _Writer.text,
    "fingerprint": _write_fingerprint,
    "failure": _write_failure,
    "uuids": _write_uuids,
    "members": _write_members,
}

_READERS: Dict[str, Callable[[_Reader], Any]] = {
    "uuid": _Reader.uuid,
    "text": _Reader.text,
    "fingerprint": _read_fingerprint,
    "failure": _read_failure,
    "uuids": _read_uuids,
    "members": _read_members,
}


# ---------------------------------------------------------------------
# Registries: (phase, tag) -> class, plus the field layout of each class
# ---------------------------------------------------------------------

_FIELD_KINDS: Dict[Type[Any], Tuple[str, ...]] = {
    ClientInfo: ("fingerprint",),
    RequestMembers: (),
    RequestSelfMember: (),
    SendMessage: ("uuid", "text"),
    EditMessage: ("uuid", "text"),
    RemoveMessage: ("uuid",),
    ClientKeepAlive: (),
    ServerSuccess: ("fingerprint",),
    ServerFail: ("failure",),
    ServerInfo: ("text",),
    SelfMember: ("uuid",),
    Members: ("uuids",),
    NewMember: ("uuid",),
    RemoveMember: ("uuid",),
    MemberInfo: ("members",),
    NewMessage: ("uuid", "uuid", "text"),
    MessageEdited: ("uuid", "uuid", "text"),
    MessageRemoved: ("uuid", "uuid"),
    ServerKeepAlive: (),
    InvalidState: (),
}


def _registry(*classes: Type[Any]) -> Dict[Tuple[int, int], Type[Any]]:
    return {(int(c.PHASE), int(c.TAG)): c for c in classes}


_CLIENT_REGISTRY = _registry(
    ClientInfo,
    RequestMembers,
    RequestSelfMember,
    SendMessage,
    EditMessage,
    RemoveMessage,
    ClientKeepAlive,
)

_SERVER_REGISTRY = _registry(
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
)

_KNOWN_PHASES = {int(p) for p in Phase}


def _encode(msg: Any, registry: Dict[Tuple[int, int], Type[Any]]) -> bytes:
    cls = type(msg)
    if cls is UnknownPacket:
        raise WireEncodeError("unknown_variant", "cannot encode an unknown variant")
    key = (int(getattr(cls, "PHASE", -1)), int(getattr(cls, "TAG", -1)))
    if registry.get(key) is not cls:
        raise WireEncodeError("unregistered_type", f"not a packet of this direction: {cls.__name__}")

    w = _Writer()
    w.u32(key[0])
    w.u32(key[1])
    for f, kind in zip(fields(msg), _FIELD_KINDS[cls]):
        _WRITERS[kind](w, getattr(msg, f.name))
    return w.finish()


def _parse(payload: bytes, registry: Dict[Tuple[int, int], Type[Any]]) -> Any:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise WireDecodeError("invalid_payload", f"expected bytes, got {type(payload).__name__}")
    if len(payload) > MAX_PACKET_BYTES:
        raise WireDecodeError("oversize", f"packet of {len(payload)} bytes exceeds {MAX_PACKET_BYTES}")

    r = _Reader(bytes(payload))
    envelope = r.u32()
    if envelope not in _KNOWN_PHASES:
        return UnknownPacket(envelope=envelope)

    tag = r.u32()
    cls = registry.get((envelope, tag))
    if cls is None:
        return UnknownPacket(envelope=envelope, variant=tag)

    values = [_READERS[kind](r) for kind in _FIELD_KINDS[cls]]
    # Trailing bytes are tolerated (newer peers may append fields).
    return cls(*values)


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------


def encode_client_packet(msg: ClientPacket) -> bytes:
    return _encode(msg, _CLIENT_REGISTRY)


def encode_server_packet(msg: ServerPacket) -> bytes:
    return _encode(msg, _SERVER_REGISTRY)


def parse_client_packet(payload: bytes) -> ClientPacket:
    """Decode or raise WireDecodeError."""
    return _parse(payload, _CLIENT_REGISTRY)


def parse_server_packet(payload: bytes) -> ServerPacket:
    """Decode or raise WireDecodeError."""
    return _parse(payload, _SERVER_REGISTRY)


def _or_none(parse: Callable[[bytes], T], payload: bytes) -> Optional[T]:
    try:
        return parse(payload)
    except WireDecodeError:
        return None


def decode_client_packet(payload: bytes) -> Optional[ClientPacket]:
    """Decode a client packet; None means the peer sent garbage."""
    return _or_none(parse_client_packet, payload)


def decode_server_packet(payload: bytes) -> Optional[ServerPacket]:
    """Decode a server packet; None means the peer sent garbage."""
    return _or_none(parse_server_packet, payload)
