# src/tuichat/net/__init__.py
"""
tuichat — Network package

Shared by client and server:
  - compat: protocol fingerprint + compatibility negotiation
  - messages: packet variants (frozen dataclasses) and wire tags
  - codec: deterministic, size-bounded binary encoding
  - errors: session-ending error taxonomy
  - transport: abstract session/listener interfaces
  - transport_tcp: asyncio streams with length-prefixed frames
  - transport_memory: in-process sessions (tests, embedding)
  - select: single-branch multi-way wait used by both chat loops
"""

from __future__ import annotations

__all__ = [
    "compat",
    "messages",
    "codec",
    "errors",
    "transport",
    "transport_tcp",
    "transport_memory",
    "select",
]
