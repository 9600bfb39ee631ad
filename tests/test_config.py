from __future__ import annotations

from tuichat import env
from tuichat.config import ClientConfig, ServerConfig, client_config_from_env, server_config_from_env


def test_server_defaults() -> None:
    cfg = ServerConfig()
    assert (cfg.bind_host, cfg.bind_port) == ("0.0.0.0", 13331)
    assert cfg.heartbeat_s == 1.0
    assert cfg.reject_duplicate_addresses is False
    assert (cfg.bus_capacity, cfg.bus_overflow) == (256, "drop_oldest")


def test_server_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("TUICHAT_BIND_HOST", "127.0.0.1")
    monkeypatch.setenv("TUICHAT_BIND_PORT", "4000")
    monkeypatch.setenv("TUICHAT_HEARTBEAT_MS", "250")
    monkeypatch.setenv("TUICHAT_REJECT_DUPLICATE_ADDRESSES", "yes")
    monkeypatch.setenv("TUICHAT_BUS_CAPACITY", "8")
    monkeypatch.setenv("TUICHAT_BUS_OVERFLOW", "DISCONNECT")

    cfg = server_config_from_env()
    assert cfg == ServerConfig(
        bind_host="127.0.0.1",
        bind_port=4000,
        heartbeat_ms=250,
        reject_duplicate_addresses=True,
        bus_capacity=8,
        bus_overflow="disconnect",
    )


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("TUICHAT_BIND_PORT", "not-a-port")
    monkeypatch.setenv("TUICHAT_HEARTBEAT_MS", "1")
    monkeypatch.setenv("TUICHAT_REJECT_DUPLICATE_ADDRESSES", "maybe")
    monkeypatch.setenv("TUICHAT_BUS_OVERFLOW", "block")

    cfg = server_config_from_env()
    assert cfg.bind_port == 13331
    assert cfg.heartbeat_ms == 50
    assert cfg.reject_duplicate_addresses is False
    assert cfg.bus_overflow == "drop_oldest"


def test_client_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("TUICHAT_SERVER_HOST", "chat.example")
    monkeypatch.setenv("TUICHAT_SERVER_PORT", "9000")
    monkeypatch.setenv("TUICHAT_SELF_MEMBER_RETRY_MS", "500")
    monkeypatch.setenv("TUICHAT_OUTBOUND_CAPACITY", "0")

    cfg = client_config_from_env()
    assert (cfg.server_host, cfg.server_port) == ("chat.example", 9000)
    assert cfg.self_member_retry_s == 0.5
    assert cfg.outbound_capacity == 1
    assert ClientConfig().outbound_capacity == 256


def test_dotenv_is_loaded_once_without_overriding(tmp_path, monkeypatch) -> None:
    dotenv_file = tmp_path / "chat.env"
    dotenv_file.write_text("TUICHAT_BIND_PORT=5555\nTUICHAT_BIND_HOST=10.1.1.1\n")
    monkeypatch.setenv("TUICHAT_BIND_HOST", "192.168.0.1")
    monkeypatch.delenv("TUICHAT_BIND_PORT", raising=False)
    monkeypatch.setattr(env, "_LOADED", False)

    assert env.load_dotenv_if_present(str(dotenv_file)) is True
    assert env.load_dotenv_if_present(str(dotenv_file)) is False

    cfg = server_config_from_env()
    assert cfg.bind_port == 5555
    assert cfg.bind_host == "192.168.0.1"
    monkeypatch.delenv("TUICHAT_BIND_PORT", raising=False)


def test_missing_dotenv_is_not_an_error(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(env, "_LOADED", False)
    assert env.load_dotenv_if_present(str(tmp_path / "absent.env")) is False
