"""
Outbound Pacing

Rate-limited admission queue for outbound operations.
"""

from whatsapp_gateway.outbound.clock import Clock
from whatsapp_gateway.outbound.rate_queue import QueuedTask, QueueStats, RateBudgetQueue, RateLimitConfig
from whatsapp_gateway.outbound.spacing import RecipientSpacingTable

__all__ = [
    "Clock",
    "QueuedTask",
    "QueueStats",
    "RateBudgetQueue",
    "RateLimitConfig",
    "RecipientSpacingTable",
]
