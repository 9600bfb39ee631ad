# src/tuichat/server/registry.py
from __future__ import annotations

from typing import Dict


class ConnectionRegistry:
    """Live connections keyed by remote host.

    Counts are reference-counted so several sessions from the same host
    (allowed when duplicate rejection is off) each hold their own entry.
    A rejected duplicate never touches the live session's entry.
    """

    def __init__(self) -> None:
        self._hosts: Dict[str, int] = {}

    def try_add(self, host: str) -> bool:
        """Register host only if it has no live session. Returns False on duplicate."""
        if self._hosts.get(host, 0) > 0:
            return False
        self._hosts[host] = 1
        return True

    def add(self, host: str) -> None:
        self._hosts[host] = self._hosts.get(host, 0) + 1

    def remove(self, host: str) -> None:
        n = self._hosts.get(host, 0) - 1
        if n > 0:
            self._hosts[host] = n
        else:
            self._hosts.pop(host, None)

    def __contains__(self, host: object) -> bool:
        return host in self._hosts

    def __len__(self) -> int:
        return sum(self._hosts.values())
