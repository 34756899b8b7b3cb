"""
Clock

Wall-clock time and sleeping for the outbound queue, behind a small
interface so pacing can be driven by a simulated clock.
"""

import asyncio
import time
from datetime import datetime, timedelta


class Clock:
    """Real wall clock backed by time.time() and asyncio.sleep()."""

    def now(self) -> float:
        """Current time as epoch seconds."""
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


SYSTEM_CLOCK = Clock()


def local_day(timestamp: float) -> str:
    """Local calendar day of an epoch timestamp, e.g. '2024-01-31'."""
    return datetime.fromtimestamp(timestamp).date().isoformat()


def seconds_until_local_midnight(timestamp: float) -> float:
    """Seconds from an epoch timestamp to the next local midnight."""
    moment = datetime.fromtimestamp(timestamp)
    midnight = datetime.combine(moment.date() + timedelta(days=1), datetime.min.time())
    return max(midnight.timestamp() - timestamp, 0.0)
