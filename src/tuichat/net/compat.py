# src/tuichat/net/compat.py
"""
tuichat — Protocol compatibility

Every connection starts by exchanging a fingerprint:
  - magic: fixed 64-bit token. Filters out accidental connections from
    programs that do not speak this protocol at all. It is NOT a trust
    decision.
  - version: (major, minor, patch). Peers are compatible when the major
    versions match; minor and patch may differ freely (semver-like).

Both the server (on ClientInfo) and the client (on Success) run the same
check, so a buggy server claiming success is still caught client-side.

Nothing in this module performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from tuichat.net.errors import HandshakeRejected


@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True, slots=True)
class CompatibilityFingerprint:
    magic: int
    version: Version


# Never change the magic. Bump the major version for breaking wire changes.
PROTOCOL_MAGIC = 0x3064396A3DF83F1D
PROTOCOL_VERSION = Version(0, 1, 0)

PROTOCOL_FINGERPRINT = CompatibilityFingerprint(magic=PROTOCOL_MAGIC, version=PROTOCOL_VERSION)


class IncompatibleKind(IntEnum):
    # Wire tags; order is part of the protocol.
    INVALID_MAGIC = 0
    VERSION_MISMATCH = 1


@dataclass(frozen=True, slots=True)
class Incompatibility:
    kind: IncompatibleKind
    local: Optional[Version] = None
    remote: Optional[Version] = None

    def __str__(self) -> str:
        if self.kind == IncompatibleKind.INVALID_MAGIC:
            return "Invalid magic bytes (not a tuichat peer)"
        return f"Incompatible versions (local {self.local}, remote {self.remote})"


def incompatibility(local: CompatibilityFingerprint, remote: CompatibilityFingerprint) -> Optional[Incompatibility]:
    """Return why `remote` cannot talk to `local`, or None when compatible."""

    if local.magic != remote.magic:
        return Incompatibility(IncompatibleKind.INVALID_MAGIC)

    if local.version.major != remote.version.major:
        return Incompatibility(IncompatibleKind.VERSION_MISMATCH, local=local.version, remote=remote.version)

    return None


def is_compatible(local: CompatibilityFingerprint, remote: CompatibilityFingerprint) -> bool:
    return incompatibility(local, remote) is None


def require_compatible(local: CompatibilityFingerprint, remote: CompatibilityFingerprint) -> None:
    reason = incompatibility(local, remote)
    if reason is not None:
        raise HandshakeRejected(str(reason))
