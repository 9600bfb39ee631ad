# src/tuichat/net/select.py
from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Tuple

TICK = "tick"


class EventSelect:
    """Single multi-way wait over named receive sources plus a periodic tick.

    Each call to next() services exactly one branch:
      - TICK once the period has elapsed (then it is rescheduled),
      - otherwise one completed source, picked round-robin so a busy
        source cannot starve the others.

    A source that is not serviced keeps its pending receive across calls;
    nothing is cancelled until close(). If a source raised, next() re-raises
    that exception (transport failures end the session).
    """

    def __init__(
        self,
        sources: Dict[str, Callable[[], Awaitable[Any]]],
        *,
        tick_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if TICK in sources:
            raise ValueError(f"source name {TICK!r} is reserved")
        self._factories = dict(sources)
        self._order: List[str] = list(sources)
        self._pending: Dict[str, asyncio.Future] = {}
        self._tick_s = float(tick_s)
        self._clock = clock
        self._deadline = clock() + self._tick_s

    def _arm(self) -> None:
        for name, factory in self._factories.items():
            if name not in self._pending:
                self._pending[name] = asyncio.ensure_future(factory())

    def _take_ready(self) -> Tuple[str, asyncio.Future] | None:
        for name in self._order:
            fut = self._pending.get(name)
            if fut is not None and fut.done():
                self._order.remove(name)
                self._order.append(name)
                del self._pending[name]
                return name, fut
        return None

    async def next(self) -> Tuple[str, Any]:
        while True:
            self._arm()

            now = self._clock()
            if now >= self._deadline:
                self._deadline = now + self._tick_s
                return TICK, None

            ready = self._take_ready()
            if ready is None:
                await asyncio.wait(
                    list(self._pending.values()),
                    timeout=self._deadline - now,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                continue

            name, fut = ready
            return name, fut.result()

    def close(self) -> None:
        for fut in self._pending.values():
            if not fut.done():
                fut.cancel()
            elif not fut.cancelled():
                # Mark a failed receive nobody consumed as retrieved.
                fut.exception()
        self._pending.clear()
