# src/tuichat/config.py
from __future__ import annotations

import os
from dataclasses import dataclass

OVERFLOW_POLICIES = ("drop_oldest", "disconnect")

DEFAULT_PORT = 13331


def _env_bool(name: str, default: bool) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if not raw:
        return bool(default)
    if raw in {"1", "true", "yes", "y", "on"}:
        return True
    if raw in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def _env_str(name: str, default: str) -> str:
    v = os.environ.get(name)
    return (default if v is None else str(v)).strip() or default


@dataclass(frozen=True, slots=True)
class ServerConfig:
    bind_host: str = "0.0.0.0"
    bind_port: int = DEFAULT_PORT
    heartbeat_ms: int = 1000

    # Reject a second live connection from the same host with
    # Init.Fail{AlreadyConnected}. Off by default: several local clients
    # behind one address are normal during development.
    reject_duplicate_addresses: bool = False

    # Per-subscriber broadcast buffering.
    bus_capacity: int = 256
    bus_overflow: str = "drop_oldest"

    @property
    def heartbeat_s(self) -> float:
        return self.heartbeat_ms / 1000.0


@dataclass(frozen=True, slots=True)
class ClientConfig:
    server_host: str = "127.0.0.1"
    server_port: int = DEFAULT_PORT
    heartbeat_ms: int = 1000
    self_member_retry_ms: int = 1000
    outbound_capacity: int = 256

    @property
    def heartbeat_s(self) -> float:
        return self.heartbeat_ms / 1000.0

    @property
    def self_member_retry_s(self) -> float:
        return self.self_member_retry_ms / 1000.0


def server_config_from_env() -> ServerConfig:
    overflow = _env_str("TUICHAT_BUS_OVERFLOW", "drop_oldest").lower()
    if overflow not in OVERFLOW_POLICIES:
        overflow = "drop_oldest"
    return ServerConfig(
        bind_host=_env_str("TUICHAT_BIND_HOST", "0.0.0.0"),
        bind_port=_env_int("TUICHAT_BIND_PORT", DEFAULT_PORT),
        heartbeat_ms=max(50, _env_int("TUICHAT_HEARTBEAT_MS", 1000)),
        reject_duplicate_addresses=_env_bool("TUICHAT_REJECT_DUPLICATE_ADDRESSES", False),
        bus_capacity=max(1, _env_int("TUICHAT_BUS_CAPACITY", 256)),
        bus_overflow=overflow,
    )


def client_config_from_env() -> ClientConfig:
    return ClientConfig(
        server_host=_env_str("TUICHAT_SERVER_HOST", "127.0.0.1"),
        server_port=_env_int("TUICHAT_SERVER_PORT", DEFAULT_PORT),
        heartbeat_ms=max(50, _env_int("TUICHAT_HEARTBEAT_MS", 1000)),
        self_member_retry_ms=max(50, _env_int("TUICHAT_SELF_MEMBER_RETRY_MS", 1000)),
        outbound_capacity=max(1, _env_int("TUICHAT_OUTBOUND_CAPACITY", 256)),
    )
