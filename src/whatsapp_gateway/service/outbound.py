"""
Outbound Sender

Sends messages through a session's transport, paced by a rate budget
queue:
1. Validates the session exists
2. Enqueues the send on the session's own queue
3. Resolves the transport when the queue dispatches the send
4. Drops the session's queue when the session is destroyed
"""

import asyncio
import logging
import random
from typing import Any, Callable

from whatsapp_gateway.contracts.event_types import SessionEventType
from whatsapp_gateway.contracts.events import GatewayEvent
from whatsapp_gateway.contracts.session import SessionStatus
from whatsapp_gateway.errors import SessionNotConnected, SessionNotFound
from whatsapp_gateway.outbound.clock import Clock
from whatsapp_gateway.outbound.rate_queue import QueueStats, RateBudgetQueue, RateLimitConfig
from whatsapp_gateway.sessions.orchestrator import SessionOrchestrator
from whatsapp_gateway.transport.base import SendResult

logger = logging.getLogger(__name__)


class OutboundSender:
    """
    Handles outbound WhatsApp messages.

    Responsibilities:
    - Keep one rate budget queue per session
    - Send through the session's current transport
    - Release queues of destroyed sessions
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        config_factory: Callable[[str], RateLimitConfig] | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the sender.

        Args:
            orchestrator: Session orchestrator providing transports
            config_factory: Builds the rate limits for a session id
            clock: Clock shared by the queues (defaults to the system clock)
            rng: Random source shared by the queues
        """
        self.orchestrator = orchestrator
        self.config_factory = config_factory or (lambda session_id: RateLimitConfig())
        self.clock = clock
        self.rng = rng
        self._queues: dict[str, RateBudgetQueue] = {}
        self._closing: set[asyncio.Task] = set()
        self._subscription = orchestrator.events.subscribe(
            self._on_session_event,
            kinds={SessionEventType.DESTROYED},
        )

    def queue_for(self, session_id: str) -> RateBudgetQueue:
        """Get or create the queue for a session."""
        queue = self._queues.get(session_id)
        if queue is None:
            queue = RateBudgetQueue(
                self.config_factory(session_id),
                clock=self.clock,
                rng=self.rng,
                name=session_id,
            )
            self._queues[session_id] = queue
        return queue

    def send_message(
        self,
        session_id: str,
        recipient: str,
        payload: dict[str, Any],
    ) -> asyncio.Future:
        """
        Queue a message for a session.

        Args:
            session_id: Sending session
            recipient: Recipient jid
            payload: Message content passed to the transport

        Returns:
            Future resolved with the transport's SendResult

        Raises:
            SessionNotFound: If the session is not registered
        """
        if not self.orchestrator.has_session(session_id):
            raise SessionNotFound(f"Session not found: {session_id}", details={"session_id": session_id})

        async def operation() -> SendResult:
            return await self._send_now(session_id, recipient, payload)

        return self.queue_for(session_id).enqueue(recipient, operation)

    async def _send_now(self, session_id: str, recipient: str, payload: dict[str, Any]) -> SendResult:
        info = self.orchestrator.get_info(session_id)
        transport = self.orchestrator.get_transport(session_id)
        if info is None or transport is None or info.status != SessionStatus.CONNECTED:
            raise SessionNotConnected(
                f"Session {session_id} is not connected",
                details={"session_id": session_id, "status": info.status.value if info else None},
            )

        result = await transport.send_message(recipient, payload)

        if result.success:
            logger.info(
                f"Message sent",
                extra={"session_id": session_id, "to": recipient, "message_id": result.message_id},
            )
        else:
            logger.warning(
                f"Message send failed: {result.error_message}",
                extra={"session_id": session_id, "to": recipient},
            )
        return result

    def stats(self, session_id: str) -> QueueStats | None:
        queue = self._queues.get(session_id)
        return queue.stats if queue else None

    async def aclose(self) -> None:
        """Close every queue and stop listening to the orchestrator."""
        self._subscription.close()
        queues, self._queues = list(self._queues.values()), {}
        for queue in queues:
            await queue.aclose()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    def _on_session_event(self, event: GatewayEvent) -> None:
        queue = self._queues.pop(event.session_id, None)
        if queue is None:
            return
        logger.info(
            f"Releasing outbound queue for destroyed session",
            extra={"session_id": event.session_id, "queue_depth": queue.queue_depth},
        )
        task = asyncio.ensure_future(queue.aclose())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
