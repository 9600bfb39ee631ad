# src/tuichat/server/broadcast.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Hashable, Optional

from tuichat.config import OVERFLOW_POLICIES
from tuichat.metrics import inc_counter
from tuichat.net.errors import BusOverflow
from tuichat.net.messages import ServerPacket
from tuichat.structured_logging import log_event

log = logging.getLogger("tuichat.bus")


class Subscription:
    """One subscriber's bounded view of the bus.

    Events arrive in publish order. What happens when the buffer is full
    depends on the policy:
      - drop_oldest: the oldest buffered event is discarded
      - disconnect: the subscription is marked overflowed and the next
        recv() raises BusOverflow
    """

    def __init__(self, key: Hashable, *, capacity: int, policy: str) -> None:
        if policy not in OVERFLOW_POLICIES:
            raise ValueError(f"unknown overflow policy: {policy!r}")
        self.key = key
        self.policy = policy
        self._queue: "asyncio.Queue[ServerPacket]" = asyncio.Queue(maxsize=max(1, int(capacity)))
        self._overflowed = asyncio.Event()
        self.dropped = 0

    @property
    def overflowed(self) -> bool:
        return self._overflowed.is_set()

    def pending(self) -> int:
        return self._queue.qsize()

    def _offer(self, event: ServerPacket) -> bool:
        if self._overflowed.is_set():
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            pass

        if self.policy == "disconnect":
            self._overflowed.set()
            inc_counter("bus_subscribers_overflowed")
            log_event(log, "bus_overflow", level=logging.WARNING, subscriber=self.key, policy=self.policy)
            return False

        self._queue.get_nowait()
        self.dropped += 1
        inc_counter("bus_events_dropped")
        self._queue.put_nowait(event)
        return True

    async def recv(self) -> ServerPacket:
        if self._overflowed.is_set():
            raise BusOverflow()
        if self._queue.empty():
            get = asyncio.ensure_future(self._queue.get())
            flag = asyncio.ensure_future(self._overflowed.wait())
            try:
                await asyncio.wait({get, flag}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                flag.cancel()
                if not get.done():
                    get.cancel()
            if get.done() and not get.cancelled():
                return get.result()
            raise BusOverflow()
        return self._queue.get_nowait()


class BroadcastBus:
    """In-process fan-out of server events to every chatting session."""

    def __init__(self, *, capacity: int = 256, policy: str = "drop_oldest") -> None:
        if policy not in OVERFLOW_POLICIES:
            raise ValueError(f"unknown overflow policy: {policy!r}")
        self.capacity = max(1, int(capacity))
        self.policy = policy
        self._subs: Dict[Hashable, Subscription] = {}

    def subscribe(self, key: Hashable, *, capacity: Optional[int] = None, policy: Optional[str] = None) -> Subscription:
        if key in self._subs:
            raise ValueError(f"already subscribed: {key}")
        sub = Subscription(
            key,
            capacity=self.capacity if capacity is None else capacity,
            policy=policy or self.policy,
        )
        self._subs[key] = sub
        return sub

    def unsubscribe(self, key: Hashable) -> None:
        self._subs.pop(key, None)

    def publish(self, event: ServerPacket) -> int:
        """Offer event to every current subscriber. Returns how many accepted it."""
        delivered = 0
        for sub in list(self._subs.values()):
            if sub._offer(event):
                delivered += 1
        return delivered

    def __contains__(self, key: object) -> bool:
        return key in self._subs

    def __len__(self) -> int:
        return len(self._subs)
