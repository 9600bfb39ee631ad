from __future__ import annotations

from tuichat.server.registry import ConnectionRegistry


def test_try_add_rejects_live_host_without_touching_its_entry() -> None:
    reg = ConnectionRegistry()
    assert reg.try_add("10.0.0.1")
    assert not reg.try_add("10.0.0.1")
    assert "10.0.0.1" in reg

    reg.remove("10.0.0.1")
    assert "10.0.0.1" not in reg
    assert reg.try_add("10.0.0.1")


def test_add_counts_concurrent_sessions_per_host() -> None:
    reg = ConnectionRegistry()
    reg.add("h")
    reg.add("h")
    reg.add("other")
    assert len(reg) == 3

    reg.remove("h")
    assert "h" in reg
    reg.remove("h")
    assert "h" not in reg
    assert len(reg) == 1


def test_remove_unknown_host_is_a_noop() -> None:
    reg = ConnectionRegistry()
    reg.remove("nobody")
    assert len(reg) == 0
