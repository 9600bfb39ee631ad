# src/tuichat/server/node.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from tuichat.config import ServerConfig
from tuichat.net.compat import PROTOCOL_FINGERPRINT, CompatibilityFingerprint
from tuichat.net.transport import Listener, Session
from tuichat.net.transport_tcp import TcpListener
from tuichat.server.broadcast import BroadcastBus
from tuichat.server.registry import ConnectionRegistry
from tuichat.server.session import ServerSessionHandler
from tuichat.structured_logging import log_event

log = logging.getLogger("tuichat.server")


class ChatServer:
    """Accept loop: one ServerSessionHandler task per session, sharing one bus and registry."""

    def __init__(
        self,
        cfg: Optional[ServerConfig] = None,
        *,
        bus: Optional[BroadcastBus] = None,
        registry: Optional[ConnectionRegistry] = None,
        fingerprint: CompatibilityFingerprint = PROTOCOL_FINGERPRINT,
    ) -> None:
        self.cfg = cfg or ServerConfig()
        self.bus = bus or BroadcastBus(capacity=self.cfg.bus_capacity, policy=self.cfg.bus_overflow)
        self.registry = registry or ConnectionRegistry()
        self.fingerprint = fingerprint
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def live_sessions(self) -> int:
        return len(self._tasks)

    def handler_for(self, session: Session) -> ServerSessionHandler:
        return ServerSessionHandler(
            session,
            cfg=self.cfg,
            bus=self.bus,
            registry=self.registry,
            fingerprint=self.fingerprint,
        )

    def spawn(self, session: Session) -> "asyncio.Task[None]":
        log_event(log, "session_accepted", peer=session.remote_address)
        task = asyncio.create_task(self.handler_for(session).run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def serve(self, listener: Listener) -> None:
        """Run until the listener stops yielding sessions."""
        async for session in listener:
            self.spawn(session)

    async def serve_tcp(self) -> None:
        async with TcpListener(self.cfg.bind_host, self.cfg.bind_port) as listener:
            log_event(log, "server_listening", host=self.cfg.bind_host, port=listener.bound_port)
            await self.serve(listener)

    async def close(self) -> None:
        """Cancel every live session task and wait for their cleanup."""
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
