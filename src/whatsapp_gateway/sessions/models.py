"""
Session Models

Reconnect policy and the pure reconnect decision.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Reconnect-with-backoff settings, fixed per orchestrator.

    Attributes:
        max_attempts: Reboots allowed after consecutive non-logout closes
        base_delay_ms: Delay before the first reboot
        backoff_multiplier: Growth factor applied per further attempt
    """

    max_attempts: int = 5
    base_delay_ms: float = 3000.0
    backoff_multiplier: float = 1.5

    def __post_init__(self):
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    def delay_ms(self, attempt: int) -> float:
        """Delay before reboot number ``attempt`` (1-based)."""
        return self.base_delay_ms * self.backoff_multiplier ** (attempt - 1)


@dataclass(frozen=True)
class ReconnectDecision:
    """Outcome of a non-logout close: reboot after a delay, or give up."""

    attempt: int
    delay_ms: float | None

    @property
    def exhausted(self) -> bool:
        return self.delay_ms is None


def next_reconnect_delay_ms(policy: ReconnectPolicy, attempts_so_far: int) -> ReconnectDecision:
    """
    Decide what follows a non-logout close.

    Args:
        policy: Reconnect policy
        attempts_so_far: Reboots already scheduled since the last successful connect

    Returns:
        Decision carrying the new attempt count and its delay, or no delay
        once max_attempts is reached
    """
    if attempts_so_far >= policy.max_attempts:
        return ReconnectDecision(attempt=attempts_so_far, delay_ms=None)

    attempt = attempts_so_far + 1
    return ReconnectDecision(attempt=attempt, delay_ms=policy.delay_ms(attempt))
