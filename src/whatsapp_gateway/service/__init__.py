"""
Gateway Service Layer

Application-facing sending on top of sessions and pacing.
"""

from whatsapp_gateway.service.outbound import OutboundSender

__all__ = [
    "OutboundSender",
]
