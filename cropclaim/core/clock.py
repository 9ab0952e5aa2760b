"""Time source abstraction.

Services read the current time and realise delays through a ``Clock`` so
that TTLs, retry backoff and SLO windows can be driven by a virtual clock
in tests.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional, Protocol


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(Protocol):
    """Source of the current time and of delays."""

    def now(self) -> datetime:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall clock backed by the system time and the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


system_clock = SystemClock()
