"""
Transport Base

Abstract interface for the protocol transport backing a session.
The transport owns the WhatsApp handshake, encryption and codec; the
gateway only sees connection events and a send operation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Union

Credentials = dict[str, Any]


class DisconnectReason(IntEnum):
    """Close codes reported by the transport."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass(frozen=True)
class TransportUser:
    """Account the transport is authenticated as."""

    id: str
    name: str | None = None

    @property
    def phone_number(self) -> str:
        # "5511999999999:12@s.whatsapp.net" -> "5511999999999"
        return self.id.split(":")[0].split("@")[0]


@dataclass(frozen=True)
class ConnectionOpen:
    user: TransportUser | None = None


@dataclass(frozen=True)
class ConnectionClose:
    code: int | None = None
    reason: str | None = None

    @property
    def is_logout(self) -> bool:
        return self.code == DisconnectReason.LOGGED_OUT


@dataclass(frozen=True)
class CredentialUpdate:
    credentials: Credentials


@dataclass(frozen=True)
class QrIssued:
    payload: str


@dataclass(frozen=True)
class MessagesUpsert:
    messages: list[dict[str, Any]] = field(default_factory=list)
    type: str = "notify"


@dataclass(frozen=True)
class Passthrough:
    """Any other transport event, forwarded under its own kind."""

    kind: str
    data: Any = None


TransportEvent = Union[
    ConnectionOpen,
    ConnectionClose,
    CredentialUpdate,
    QrIssued,
    MessagesUpsert,
    Passthrough,
]

TransportEventHandler = Callable[[TransportEvent], None]


@dataclass
class SendResult:
    """
    Result from the transport after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


class Transport(ABC):
    """
    Abstract interface for a session transport.

    Implementations must:
    - Start the protocol connection on connect()
    - Report connection, QR, credential and message events to subscribers
    - Send messages while connected
    """

    @property
    @abstractmethod
    def user(self) -> TransportUser | None:
        """Authenticated account, once the connection is open."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """
        Start the connection.

        Returns once the connection attempt has started; its outcome is
        reported through events.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Must be safe to call more than once."""
        ...

    @abstractmethod
    def subscribe(self, handler: TransportEventHandler) -> Callable[[], None]:
        """
        Register an event handler.

        Args:
            handler: Called with every transport event

        Returns:
            Callable that removes the handler
        """
        ...

    @abstractmethod
    async def send_message(
        self,
        recipient: str,
        payload: dict[str, Any],
    ) -> SendResult:
        """
        Send a message.

        Args:
            recipient: Recipient jid
            payload: Message content (e.g. {"text": "..."})

        Returns:
            SendResult with message ID if successful
        """
        ...


TransportFactory = Callable[[str, Union[Credentials, None]], Transport]
