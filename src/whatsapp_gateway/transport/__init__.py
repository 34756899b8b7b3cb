"""
Session Transports

Transport contract and the development stub.
"""

from whatsapp_gateway.transport.base import (
    ConnectionClose,
    ConnectionOpen,
    CredentialUpdate,
    Credentials,
    DisconnectReason,
    MessagesUpsert,
    Passthrough,
    QrIssued,
    SendResult,
    Transport,
    TransportEvent,
    TransportFactory,
    TransportUser,
)
from whatsapp_gateway.transport.stub import StubTransport

__all__ = [
    "ConnectionClose",
    "ConnectionOpen",
    "CredentialUpdate",
    "Credentials",
    "DisconnectReason",
    "MessagesUpsert",
    "Passthrough",
    "QrIssued",
    "SendResult",
    "Transport",
    "TransportEvent",
    "TransportFactory",
    "TransportUser",
    "StubTransport",
]
