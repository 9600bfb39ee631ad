# src/tuichat/server/__init__.py
"""
tuichat server: per-connection session handlers, broadcast fan-out and the
connection registry.
"""

from __future__ import annotations

from tuichat.server.broadcast import BroadcastBus, Subscription
from tuichat.server.node import ChatServer
from tuichat.server.registry import ConnectionRegistry
from tuichat.server.session import ServerSessionHandler, SessionState

__all__ = [
    "BroadcastBus",
    "ChatServer",
    "ConnectionRegistry",
    "ServerSessionHandler",
    "SessionState",
    "Subscription",
]
