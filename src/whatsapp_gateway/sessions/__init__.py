"""
Session Orchestration

Session lifecycle, reconnect policy and the gateway event channel.
"""

from whatsapp_gateway.sessions.channel import EventChannel, Subscription
from whatsapp_gateway.sessions.models import ReconnectDecision, ReconnectPolicy, next_reconnect_delay_ms
from whatsapp_gateway.sessions.orchestrator import SessionOrchestrator

__all__ = [
    "EventChannel",
    "Subscription",
    "ReconnectDecision",
    "ReconnectPolicy",
    "next_reconnect_delay_ms",
    "SessionOrchestrator",
]
