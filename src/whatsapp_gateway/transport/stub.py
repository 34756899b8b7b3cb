"""
Stub Transport

Development transport that logs all operations without talking to
WhatsApp. Useful for local development and testing.
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from whatsapp_gateway.transport.base import (
    ConnectionClose,
    ConnectionOpen,
    CredentialUpdate,
    Credentials,
    DisconnectReason,
    QrIssued,
    SendResult,
    Transport,
    TransportEvent,
    TransportEventHandler,
    TransportUser,
)

logger = logging.getLogger(__name__)


class StubTransport(Transport):
    """
    Stub transport for development and testing.

    - Logs all outbound messages
    - Lets tests emit any transport event
    - Can pair itself (QR, then open) when auto_pair is set
    - Can be configured to simulate send failures
    """

    def __init__(
        self,
        session_id: str,
        credentials: Credentials | None = None,
        auto_pair: bool = False,
        pair_delay: float = 0.5,
        phone_number: str = "5500000000000",
        simulate_failures: bool = False,
        failure_rate: float = 0.1,
        connect_error: Exception | None = None,
    ):
        self.session_id = session_id
        self.credentials = credentials
        self.auto_pair = auto_pair
        self.pair_delay = pair_delay
        self.phone_number = phone_number
        self.simulate_failures = simulate_failures
        self.failure_rate = failure_rate
        self.connect_error = connect_error
        self.sent_messages: list[dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self.connect_calls = 0
        self._user: TransportUser | None = None
        self._handlers: list[TransportEventHandler] = []
        self._pair_task: asyncio.Task | None = None

    @property
    def user(self) -> TransportUser | None:
        return self._user

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

        logger.info(f"[STUB] Connecting session {self.session_id}")
        self.closed = False
        if self.auto_pair:
            self._pair_task = asyncio.create_task(self._pair())

    async def close(self) -> None:
        if self._pair_task and not self._pair_task.done():
            self._pair_task.cancel()
        was_open = self.connected
        self.connected = False
        self.closed = True
        logger.info(f"[STUB] Closed session {self.session_id}", extra={"was_open": was_open})

    def subscribe(self, handler: TransportEventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: TransportEvent) -> None:
        """Deliver an event to every subscriber, as the real transport would."""
        if isinstance(event, ConnectionOpen):
            self.connected = True
            self._user = event.user or self._user
        elif isinstance(event, ConnectionClose):
            self.connected = False

        for handler in list(self._handlers):
            handler(event)

    def open(self, user: TransportUser | None = None) -> None:
        """Emit a successful connection."""
        self.emit(ConnectionOpen(user=user or TransportUser(id=f"{self.phone_number}:1@s.whatsapp.net", name="Stub")))

    def drop(self, code: int = DisconnectReason.CONNECTION_LOST, reason: str = "Connection lost") -> None:
        """Emit a non-logout close."""
        self.emit(ConnectionClose(code=code, reason=reason))

    def logout(self) -> None:
        """Emit a logout close."""
        self.emit(ConnectionClose(code=DisconnectReason.LOGGED_OUT, reason="Logged out"))

    async def _pair(self) -> None:
        if self.credentials is None:
            self.emit(QrIssued(payload=f"stub-qr-{self.session_id}-{uuid4().hex[:8]}"))
            await asyncio.sleep(self.pair_delay)
            self.emit(CredentialUpdate(credentials={"me": {"id": self.phone_number}, "registered": True}))
        await asyncio.sleep(self.pair_delay)
        self.open()

    async def send_message(
        self,
        recipient: str,
        payload: dict[str, Any],
    ) -> SendResult:
        """Log and return success for a message."""
        message_id = f"stub_msg_{uuid4().hex[:16]}"

        self.sent_messages.append({
            "to": recipient,
            "payload": payload,
            "message_id": message_id,
            "timestamp": datetime.utcnow().isoformat(),
        })

        logger.info(
            f"[STUB] Sending message",
            extra={"to": recipient, "message_id": message_id},
        )

        if self.simulate_failures and random.random() < self.failure_rate:
            return SendResult(
                success=False,
                error_message="Simulated failure for testing",
            )

        return SendResult(
            success=True,
            message_id=message_id,
            raw_response={"stub": True, "message_id": message_id},
        )


def stub_transport_factory(session_id: str, credentials: Credentials | None) -> StubTransport:
    """Factory used by the CLI: a stub that pairs itself."""
    return StubTransport(session_id, credentials, auto_pair=True)
