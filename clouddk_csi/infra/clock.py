"""Time source for polling loops.

Waiting goes through a Clock so that tests can simulate minutes of
polling without real delays. Every sleep is an asyncio suspension point,
which keeps waits cancellable from the outside (e.g. asyncio.timeout).
"""

from __future__ import annotations

import asyncio
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def monotonic(self) -> float:
        return asyncio.get_running_loop().time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
