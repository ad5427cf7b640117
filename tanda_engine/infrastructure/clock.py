"""Time source shared by every component so tests can control it"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    async def after(self, duration: timedelta) -> None: ...


class SystemClock:
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def after(self, duration: timedelta) -> None:
        await asyncio.sleep(max(duration.total_seconds(), 0))
