# src/tuichat/server/__main__.py
from __future__ import annotations

import argparse
import asyncio
import dataclasses
from typing import Optional

from tuichat.config import server_config_from_env
from tuichat.env import load_dotenv_if_present
from tuichat.server.node import ChatServer
from tuichat.structured_logging import configure_structured_logging


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv_if_present()
    configure_structured_logging()
    cfg = server_config_from_env()

    p = argparse.ArgumentParser(description="tuichat server (TCP, length-prefixed frames)")
    p.add_argument("--host", default=cfg.bind_host)
    p.add_argument("--port", type=int, default=cfg.bind_port)
    p.add_argument("--reject-duplicates", action="store_true", default=cfg.reject_duplicate_addresses)
    args = p.parse_args(argv)

    cfg = dataclasses.replace(
        cfg,
        bind_host=args.host,
        bind_port=args.port,
        reject_duplicate_addresses=bool(args.reject_duplicates),
    )
    try:
        asyncio.run(ChatServer(cfg).serve_tcp())
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
