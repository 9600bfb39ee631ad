# src/tuichat/client/__init__.py
"""
tuichat client: session state machine and the reconciliation store that
rebuilds chat state from server events.
"""

from __future__ import annotations

from tuichat.client.session import ClientSession, SessionEnded
from tuichat.client.store import MessageRecord, ReconciliationStore, SelfIdentity

__all__ = [
    "ClientSession",
    "MessageRecord",
    "ReconciliationStore",
    "SelfIdentity",
    "SessionEnded",
]
