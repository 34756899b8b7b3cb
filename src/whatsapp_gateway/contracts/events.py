"""
Gateway Events

Typed events published on the orchestrator's event channel. Every event
carries its kind and can render itself as the ``data`` part of a webhook
payload.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from whatsapp_gateway.contracts.event_types import SessionEventType
from whatsapp_gateway.contracts.messages import InboundMessage
from whatsapp_gateway.contracts.session import SessionInfo
from whatsapp_gateway.errors import ReconnectExhausted


@dataclass(frozen=True)
class SessionCreated:
    session_id: str
    kind: ClassVar[str] = SessionEventType.CREATED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id}


@dataclass(frozen=True)
class SessionStatusChanged:
    info: SessionInfo
    kind: ClassVar[str] = SessionEventType.STATUS.value

    @property
    def session_id(self) -> str:
        return self.info.id

    def to_dict(self) -> dict[str, Any]:
        return self.info.to_dict()


@dataclass(frozen=True)
class SessionQr:
    session_id: str
    qr: str
    kind: ClassVar[str] = SessionEventType.QR.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "qr": self.qr}


@dataclass(frozen=True)
class SessionConnected:
    session_id: str
    phone_number: str
    kind: ClassVar[str] = SessionEventType.CONNECTED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "phone_number": self.phone_number}


@dataclass(frozen=True)
class SessionDisconnected:
    session_id: str
    reason: str
    kind: ClassVar[str] = SessionEventType.DISCONNECTED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "reason": self.reason}


@dataclass(frozen=True)
class SessionDestroyed:
    session_id: str
    kind: ClassVar[str] = SessionEventType.DESTROYED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id}


@dataclass(frozen=True)
class ReconnectScheduled:
    session_id: str
    attempt: int
    delay_ms: float
    kind: ClassVar[str] = SessionEventType.RECONNECT_SCHEDULED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "attempt": self.attempt, "delay_ms": self.delay_ms}


@dataclass(frozen=True)
class ReconnectExhaustedEvent:
    session_id: str
    attempts: int
    kind: ClassVar[str] = SessionEventType.RECONNECT_EXHAUSTED.value

    @property
    def error(self) -> ReconnectExhausted:
        return ReconnectExhausted(
            f"Reconnect attempts exhausted for session {self.session_id}",
            details={"session_id": self.session_id, "attempts": self.attempts},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "attempts": self.attempts, "error": self.error.code}


@dataclass(frozen=True)
class MessageReceived:
    session_id: str
    message: InboundMessage
    kind: ClassVar[str] = SessionEventType.MESSAGE_RECEIVED.value

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "message": self.message.to_dict()}


@dataclass(frozen=True)
class TransportEventForwarded:
    """A transport event the gateway does not interpret, republished as-is."""

    session_id: str
    event_kind: str
    data: Any = field(default=None)

    @property
    def kind(self) -> str:
        return self.event_kind

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "data": self.data}


GatewayEvent = Union[
    SessionCreated,
    SessionStatusChanged,
    SessionQr,
    SessionConnected,
    SessionDisconnected,
    SessionDestroyed,
    ReconnectScheduled,
    ReconnectExhaustedEvent,
    MessageReceived,
    TransportEventForwarded,
]
