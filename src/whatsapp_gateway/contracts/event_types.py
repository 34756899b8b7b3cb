"""
Gateway Event Types

Event kinds published by the session orchestrator and forwarded to
webhook endpoints.
"""

from enum import Enum


class SessionEventType(str, Enum):
    """
    Event kinds for the session orchestrator.

    Session lifecycle events are published for every transition; message
    events carry normalized inbound messages. Transport events the gateway
    does not interpret are republished under their own kind.
    """

    CREATED = "session.created"
    STATUS = "session.status"
    QR = "session.qr"
    CONNECTED = "session.connected"
    DISCONNECTED = "session.disconnected"
    DESTROYED = "session.destroyed"
    RECONNECT_SCHEDULED = "session.reconnect_scheduled"
    RECONNECT_EXHAUSTED = "session.reconnect_exhausted"

    MESSAGE_RECEIVED = "messages.upsert"

    def __str__(self) -> str:
        return self.value


# Kinds a webhook endpoint receives when it does not list its own
DEFAULT_WEBHOOK_EVENTS = frozenset({
    "messages.upsert",
    "messages.update",
    "messages.delete",
    "message-receipt.update",
    "contacts.upsert",
    "contacts.update",
    "chats.upsert",
    "chats.update",
    "groups.upsert",
    "groups.update",
    "group-participants.update",
    "presence.update",
    "call",
})
