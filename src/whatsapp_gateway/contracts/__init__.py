"""
Gateway Contracts

Event kinds, typed events, session snapshots and inbound message
definitions.
"""

from whatsapp_gateway.contracts.event_types import DEFAULT_WEBHOOK_EVENTS, SessionEventType
from whatsapp_gateway.contracts.events import (
    GatewayEvent,
    MessageReceived,
    ReconnectExhaustedEvent,
    ReconnectScheduled,
    SessionConnected,
    SessionCreated,
    SessionDestroyed,
    SessionDisconnected,
    SessionQr,
    SessionStatusChanged,
    TransportEventForwarded,
)
from whatsapp_gateway.contracts.messages import (
    InboundMessage,
    MessageType,
    parse_inbound_message,
)
from whatsapp_gateway.contracts.session import SessionInfo, SessionStatus

__all__ = [
    "DEFAULT_WEBHOOK_EVENTS",
    "SessionEventType",
    "GatewayEvent",
    "MessageReceived",
    "ReconnectExhaustedEvent",
    "ReconnectScheduled",
    "SessionConnected",
    "SessionCreated",
    "SessionDestroyed",
    "SessionDisconnected",
    "SessionQr",
    "SessionStatusChanged",
    "TransportEventForwarded",
    "InboundMessage",
    "MessageType",
    "parse_inbound_message",
    "SessionInfo",
    "SessionStatus",
]
