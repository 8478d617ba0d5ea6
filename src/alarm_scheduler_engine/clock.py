import asyncio
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Time source shared by scheduling and due-time comparison."""

    def now(self) -> datetime: ...

    async def sleep_until(self, instant: datetime) -> None: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep_until(self, instant: datetime) -> None:
        # asyncio.sleep may return early; loop until the wall clock reaches the instant.
        while (remaining := (instant - self.now()).total_seconds()) > 0:
            await asyncio.sleep(remaining)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
