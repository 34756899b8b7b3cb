"""
Rate Budget Queue

Single-flight admission queue that paces outbound operations to stay
under WhatsApp's anti-spam heuristics:
1. Daily budget (resets at local midnight)
2. Per-minute budget (rolling 60 second window)
3. Minimum spacing between sends to the same recipient
4. Randomized human-like delay before every send

Exactly one operation runs at a time per queue. Each queue owns its own
budget; queues never share counters.
"""

import asyncio
import inspect
import logging
import random
from collections import deque
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from whatsapp_gateway.errors import Cancelled, QueueClosed
from whatsapp_gateway.outbound.clock import SYSTEM_CLOCK, Clock, local_day, seconds_until_local_midnight
from whatsapp_gateway.outbound.spacing import RecipientSpacingTable

logger = logging.getLogger(__name__)

MINUTE_WINDOW_SECONDS = 60.0

# Floor for the randomized pacing delay
MIN_PACING_DELAY_MS = 100

# Smallest sleep while waiting on a budget, so float rounding cannot spin
MIN_WAIT_SECONDS = 0.001

Operation = Callable[[], Awaitable[Any]]


@dataclass
class RateLimitConfig:
    """
    Pacing limits for one queue.

    Attributes:
        messages_per_minute: Successful sends allowed in any 60 second window
        messages_per_day: Successful sends allowed per local calendar day
        min_delay_ms: Lower bound of the randomized pre-send delay
        max_delay_ms: Upper bound of the randomized pre-send delay
        jitter_ms: Width of the symmetric jitter added to the delay
        per_recipient_delay_ms: Minimum gap between sends to one recipient
        on_rate_limited: Called with (recipient, queue_depth) when the queue
            has to hold back a task for the minute budget or recipient spacing
        on_daily_limit_reached: Called with the head recipient when the
            daily budget pauses the queue
    """

    messages_per_minute: int = 20
    messages_per_day: int = 500
    min_delay_ms: float = 800
    max_delay_ms: float = 3000
    jitter_ms: float = 400
    per_recipient_delay_ms: float = 2000
    on_rate_limited: Callable[[str, int], None] | None = None
    on_daily_limit_reached: Callable[[str], None] | None = None

    def __post_init__(self):
        if self.messages_per_minute < 1:
            raise ValueError("messages_per_minute must be >= 1")
        if self.messages_per_day < 1:
            raise ValueError("messages_per_day must be >= 1")
        if self.min_delay_ms < 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError("delays must satisfy 0 <= min_delay_ms <= max_delay_ms")
        if self.jitter_ms < 0 or self.per_recipient_delay_ms < 0:
            raise ValueError("jitter_ms and per_recipient_delay_ms must be >= 0")


@dataclass
class QueuedTask:
    recipient: str
    operation: Operation
    enqueued_at: float
    future: asyncio.Future


@dataclass(frozen=True)
class QueueStats:
    sent_this_minute: int
    sent_today: int
    queue_depth: int
    rate_limit_per_minute: int
    rate_limit_per_day: int


class RateBudgetQueue:
    """
    Paced FIFO queue for outbound operations.

    Usage
    -----
    >>> queue = RateBudgetQueue(RateLimitConfig(messages_per_minute=15))
    >>> result = await queue.enqueue(jid, lambda: transport.send_message(jid, {"text": "hi"}))
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        name: str = "default",
    ):
        self.config = config or RateLimitConfig()
        self.clock = clock or SYSTEM_CLOCK
        self.name = name
        self._rng = rng or random.Random()
        self._queue: deque[QueuedTask] = deque()
        self._pending: QueuedTask | None = None
        self._drain_task: asyncio.Task | None = None
        self._in_flight = False
        self._closed = False

        # Drain loop is the only writer of the budget state below
        self._minute_window: deque[float] = deque()
        self._sent_today = 0
        self._day = local_day(self.clock.now())
        self._spacing = RecipientSpacingTable(self.config.per_recipient_delay_ms / 1000)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, recipient: str, operation: Operation) -> asyncio.Future:
        """
        Queue an operation for a recipient.

        Args:
            recipient: Recipient key used for spacing (usually a jid)
            operation: Zero-argument callable returning an awaitable

        Returns:
            Future resolved with the operation's result, or failed with its
            error or Cancelled

        Raises:
            QueueClosed: If the queue was closed
            ValueError: If recipient is empty or operation is not callable
        """
        if self._closed:
            raise QueueClosed(f"Queue {self.name} is closed")
        if not recipient:
            raise ValueError("recipient is required")
        if not callable(operation):
            raise ValueError("operation must be callable")

        future = asyncio.get_running_loop().create_future()
        self._queue.append(
            QueuedTask(
                recipient=recipient,
                operation=operation,
                enqueued_at=self.clock.now(),
                future=future,
            )
        )

        logger.debug(
            f"Message enqueued",
            extra={"queue": self.name, "recipient": recipient, "queue_depth": len(self._queue)},
        )

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())

        return future

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> QueueStats:
        now = self.clock.now()
        cutoff = now - MINUTE_WINDOW_SECONDS
        sent_today = self._sent_today if local_day(now) == self._day else 0
        return QueueStats(
            sent_this_minute=sum(1 for ts in self._minute_window if ts > cutoff),
            sent_today=sent_today,
            queue_depth=len(self._queue),
            rate_limit_per_minute=self.config.messages_per_minute,
            rate_limit_per_day=self.config.messages_per_day,
        )

    def clear(self) -> int:
        """
        Reject every task not yet dispatched with Cancelled.

        An operation already running is not interrupted.

        Returns:
            Number of tasks rejected
        """
        tasks = list(self._queue)
        self._queue.clear()
        if self._pending is not None:
            tasks.insert(0, self._pending)
            self._pending = None

        rejected = 0
        for task in tasks:
            if not task.future.done():
                task.future.set_exception(Cancelled("Queue cleared", details={"recipient": task.recipient}))
                rejected += 1

        if rejected:
            logger.info(f"Cleared {rejected} queued tasks", extra={"queue": self.name})
        return rejected

    async def aclose(self) -> None:
        """Clear the queue, refuse new tasks and stop the drain loop."""
        self._closed = True
        self.clear()

        task = self._drain_task
        if task is None or task.done():
            return
        if not self._in_flight:
            task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    async def _drain(self) -> None:
        while self._queue:
            now = self.clock.now()
            self._roll_day(now)

            if self._sent_today >= self.config.messages_per_day:
                head = self._queue[0].recipient
                self._notify(self.config.on_daily_limit_reached, head)
                logger.warning(
                    f"Daily message limit reached, pausing queue",
                    extra={"queue": self.name, "sent_today": self._sent_today},
                )
                await self.clock.sleep(max(seconds_until_local_midnight(now), MIN_WAIT_SECONDS))
                continue

            self._prune_minute_window(now)
            if len(self._minute_window) >= self.config.messages_per_minute:
                wait = self._minute_window[0] + MINUTE_WINDOW_SECONDS - now
                self._notify(self.config.on_rate_limited, self._queue[0].recipient, len(self._queue))
                logger.debug(
                    f"Minute rate limit reached, waiting",
                    extra={"queue": self.name, "sent_this_minute": len(self._minute_window), "wait": wait},
                )
                await self.clock.sleep(max(wait, MIN_WAIT_SECONDS))
                continue

            task = self._queue.popleft()
            if task.future.done():
                # Cancelled by the caller
                continue
            self._pending = task

            spacing_wait = self._spacing.wait_seconds(task.recipient, now)
            if spacing_wait > 0:
                self._notify(self.config.on_rate_limited, task.recipient, len(self._queue))
                logger.debug(
                    f"Recipient spacing, waiting",
                    extra={"queue": self.name, "recipient": task.recipient, "wait": spacing_wait},
                )
                await self.clock.sleep(spacing_wait)

            delay = self._pacing_delay()
            logger.debug(
                f"Sending message after delay",
                extra={"queue": self.name, "recipient": task.recipient, "delay": delay},
            )
            await self.clock.sleep(delay)

            if self._pending is not task or task.future.done():
                # Cleared or cancelled while waiting
                continue
            self._pending = None

            await self._run(task)

    async def _run(self, task: QueuedTask) -> None:
        self._in_flight = True
        dispatched_at = self.clock.now()
        try:
            result = task.operation()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as e:
            logger.error(
                f"Message send failed in queue: {e}",
                extra={"queue": self.name, "recipient": task.recipient},
            )
            if not task.future.done():
                task.future.set_exception(e)
        else:
            completed_at = self.clock.now()
            self._roll_day(completed_at)
            self._minute_window.append(dispatched_at)
            self._sent_today += 1
            self._spacing.record(task.recipient, completed_at)
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._in_flight = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _roll_day(self, now: float) -> None:
        day = local_day(now)
        if day != self._day:
            self._day = day
            self._sent_today = 0

    def _prune_minute_window(self, now: float) -> None:
        cutoff = now - MINUTE_WINDOW_SECONDS
        while self._minute_window and self._minute_window[0] <= cutoff:
            self._minute_window.popleft()

    def _pacing_delay(self) -> float:
        """Randomized pre-send delay in seconds."""
        base = self._rng.uniform(self.config.min_delay_ms, self.config.max_delay_ms)
        jitter = (self._rng.random() - 0.5) * self.config.jitter_ms
        return max(MIN_PACING_DELAY_MS, round(base + jitter)) / 1000

    def _notify(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Queue callback failed: {e}", extra={"queue": self.name}, exc_info=True)
