"""
Recipient Spacing Table

Last dispatch time per recipient, with entries evicted once they are
older than the spacing delay. An evicted entry could no longer delay a
task, so eviction never changes admission.
"""

from collections import OrderedDict


class RecipientSpacingTable:
    """
    Tracks when each recipient was last sent to.

    Entries are kept in dispatch order, so expired entries are always at
    the front.
    """

    def __init__(self, spacing_seconds: float):
        self.spacing_seconds = spacing_seconds
        self._last_dispatch: OrderedDict[str, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._last_dispatch)

    def __contains__(self, recipient: str) -> bool:
        return recipient in self._last_dispatch

    def record(self, recipient: str, timestamp: float) -> None:
        self._last_dispatch[recipient] = timestamp
        self._last_dispatch.move_to_end(recipient)
        self.evict_expired(timestamp)

    def wait_seconds(self, recipient: str, now: float) -> float:
        """Time the recipient must still wait before the next dispatch."""
        last = self._last_dispatch.get(recipient)
        if last is None:
            return 0.0
        return max(last + self.spacing_seconds - now, 0.0)

    def evict_expired(self, now: float) -> int:
        """Drop entries older than the spacing delay; returns how many."""
        evicted = 0
        while self._last_dispatch:
            recipient, last = next(iter(self._last_dispatch.items()))
            if now - last < self.spacing_seconds:
                break
            del self._last_dispatch[recipient]
            evicted += 1
        return evicted
