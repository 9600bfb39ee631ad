from __future__ import annotations

import itertools

import pytest

from tuichat.net.compat import (
    PROTOCOL_FINGERPRINT,
    PROTOCOL_MAGIC,
    CompatibilityFingerprint,
    IncompatibleKind,
    Version,
    incompatibility,
    is_compatible,
    require_compatible,
)
from tuichat.net.errors import HandshakeRejected


def _fp(magic: int, major: int, minor: int = 0, patch: int = 0) -> CompatibilityFingerprint:
    return CompatibilityFingerprint(magic=magic, version=Version(major, minor, patch))


def test_protocol_fingerprint_constants() -> None:
    assert PROTOCOL_FINGERPRINT.magic == 0x3064396A3DF83F1D
    assert PROTOCOL_FINGERPRINT.version == Version(0, 1, 0)
    assert str(PROTOCOL_FINGERPRINT.version) == "0.1.0"


def test_compatibility_is_symmetric_and_depends_on_magic_and_major_only() -> None:
    fps = [
        _fp(PROTOCOL_MAGIC, 0, 1, 0),
        _fp(PROTOCOL_MAGIC, 0, 9, 3),
        _fp(PROTOCOL_MAGIC, 1, 0, 0),
        _fp(PROTOCOL_MAGIC, 2, 1, 1),
        _fp(0xDEADBEEF, 0, 1, 0),
        _fp(0xDEADBEEF, 1, 0, 0),
    ]
    for a, b in itertools.product(fps, repeat=2):
        expected = a.magic == b.magic and a.version.major == b.version.major
        assert is_compatible(a, b) == is_compatible(b, a) == expected


def test_minor_and_patch_differences_are_compatible() -> None:
    assert incompatibility(_fp(PROTOCOL_MAGIC, 0, 1, 0), _fp(PROTOCOL_MAGIC, 0, 7, 42)) is None


def test_magic_mismatch_wins_over_version() -> None:
    reason = incompatibility(PROTOCOL_FINGERPRINT, _fp(0x1234, 5))
    assert reason is not None
    assert reason.kind == IncompatibleKind.INVALID_MAGIC
    assert "magic" in str(reason).lower()


def test_version_mismatch_reports_both_versions() -> None:
    local = PROTOCOL_FINGERPRINT
    remote = _fp(PROTOCOL_MAGIC, 1, 0, 0)
    reason = incompatibility(local, remote)
    assert reason is not None
    assert reason.kind == IncompatibleKind.VERSION_MISMATCH
    assert reason.local == local.version
    assert reason.remote == remote.version
    assert "0.1.0" in str(reason) and "1.0.0" in str(reason)


def test_require_compatible_raises_handshake_rejected() -> None:
    require_compatible(PROTOCOL_FINGERPRINT, PROTOCOL_FINGERPRINT)
    with pytest.raises(HandshakeRejected) as ei:
        require_compatible(PROTOCOL_FINGERPRINT, _fp(PROTOCOL_MAGIC, 3))
    assert "Incompatible versions" in ei.value.reason
