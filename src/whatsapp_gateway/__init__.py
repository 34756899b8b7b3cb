"""
WhatsApp Gateway

Multi-session WhatsApp gateway core:
- Session orchestration with reconnect backoff
- Rate-budgeted outbound queue per session
- Webhook fan-out of gateway events
"""

from whatsapp_gateway.outbound.rate_queue import RateBudgetQueue, RateLimitConfig
from whatsapp_gateway.service.outbound import OutboundSender
from whatsapp_gateway.sessions.models import ReconnectPolicy
from whatsapp_gateway.sessions.orchestrator import SessionOrchestrator
from whatsapp_gateway.webhooks.dispatcher import EventFanoutDispatcher

__version__ = "0.1.0"

__all__ = [
    "EventFanoutDispatcher",
    "OutboundSender",
    "RateBudgetQueue",
    "RateLimitConfig",
    "ReconnectPolicy",
    "SessionOrchestrator",
]
