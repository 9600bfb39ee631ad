# src/tuichat/client/__main__.py
from __future__ import annotations

import argparse
import asyncio
import dataclasses
from typing import Optional

from aioconsole import ainput, aprint

from tuichat.client.session import ClientSession, SessionEnded
from tuichat.config import ClientConfig, client_config_from_env
from tuichat.env import load_dotenv_if_present
from tuichat.net.errors import TransportError
from tuichat.net.messages import MessageEdited, MessageRemoved, NewMessage, ServerPacket
from tuichat.net.transport import PeerAddr
from tuichat.net.transport_tcp import connect_tcp
from tuichat.structured_logging import configure_structured_logging


def _short(member_id) -> str:
    return str(member_id)[:8]


async def _print_events(client: ClientSession, events: "asyncio.Queue[ServerPacket]") -> None:
    while True:
        pkt = await events.get()
        if isinstance(pkt, NewMessage):
            rec = client.store.get(pkt.sender_id, pkt.message_id)
            if rec is None:
                continue
            who = "you" if client.store.is_own(rec) else _short(rec.sender_id)
            await aprint(f"\r[{rec.received_at:%H:%M:%S}] {who}: {rec.body}")
        elif isinstance(pkt, MessageEdited):
            await aprint(f"\r[edited] {_short(pkt.sender_id)}: {pkt.body}")
        elif isinstance(pkt, MessageRemoved):
            await aprint(f"\r[removed] message from {_short(pkt.sender_id)}")


async def _read_input(client: ClientSession) -> None:
    while True:
        line = await ainput("> ")
        cmd = line.strip()
        if cmd == "/quit":
            return
        if cmd == "/me":
            ident = client.store.self_identity
            await aprint(f"self: {ident.member_id or ident.status.lower()}")
            continue
        await client.send_message(line)


async def run_client(cfg: ClientConfig) -> Optional[SessionEnded]:
    addr = PeerAddr(cfg.server_host, cfg.server_port)
    try:
        session = await connect_tcp(addr)
    except TransportError as e:
        await aprint(f"could not connect: {e}")
        return SessionEnded("transport", str(e))

    events: "asyncio.Queue[ServerPacket]" = asyncio.Queue()
    client = ClientSession(session, cfg=cfg, events=events)

    run_task = asyncio.create_task(client.run())
    ui_tasks = [
        asyncio.create_task(_print_events(client, events)),
        asyncio.create_task(_read_input(client)),
    ]
    await asyncio.wait([run_task, ui_tasks[1]], return_when=asyncio.FIRST_COMPLETED)

    for t in ui_tasks:
        t.cancel()
    if not run_task.done():
        # /quit: closing the transport ends the chat loop.
        await session.close()
    ended = await run_task
    await asyncio.gather(*ui_tasks, return_exceptions=True)
    await aprint(f"session ended ({ended.kind}): {ended.reason}")
    return ended


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv_if_present()
    configure_structured_logging()
    cfg = client_config_from_env()

    p = argparse.ArgumentParser(description="tuichat line-mode client")
    p.add_argument("--host", default=cfg.server_host)
    p.add_argument("--port", type=int, default=cfg.server_port)
    args = p.parse_args(argv)

    cfg = dataclasses.replace(cfg, server_host=args.host, server_port=args.port)
    try:
        ended = asyncio.run(run_client(cfg))
    except KeyboardInterrupt:
        return 0
    return 0 if ended is None or ended.kind == "transport" else 1


if __name__ == "__main__":
    raise SystemExit(main())
