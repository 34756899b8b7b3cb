"""
Session Orchestrator

Owns any number of independently keyed sessions, each backed by one
transport connection:
1. Loads credentials and boots the transport
2. Tracks status from transport events (QR, open, close)
3. Reconnects with exponential backoff after non-logout closes
4. Persists credential updates (best effort)
5. Republishes normalized events on its event channel
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from whatsapp_gateway.auth.base import AuthStore
from whatsapp_gateway.contracts.event_types import SessionEventType
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
from whatsapp_gateway.contracts.messages import InboundMessage, parse_inbound_message
from whatsapp_gateway.contracts.session import SessionInfo, SessionStatus
from whatsapp_gateway.errors import (
    AuthLoadFailure,
    ConnectFailure,
    ConnectTimeout,
    DuplicateSession,
    LoggedOut,
    SessionNotFound,
)
from whatsapp_gateway.sessions.channel import EventChannel
from whatsapp_gateway.sessions.models import ReconnectPolicy, next_reconnect_delay_ms
from whatsapp_gateway.transport.base import (
    ConnectionClose,
    ConnectionOpen,
    CredentialUpdate,
    Credentials,
    MessagesUpsert,
    Passthrough,
    QrIssued,
    Transport,
    TransportEvent,
    TransportFactory,
)

logger = logging.getLogger(__name__)

RECONNECT_EXHAUSTED_ERROR = "reconnect attempts exhausted"

MessageCallback = Callable[[str, InboundMessage], Any]


class _SessionRecord:
    """Live state of one session. Never leaves the orchestrator."""

    def __init__(self, session_id: str):
        self.info = SessionInfo(id=session_id)
        self.transport: Transport | None = None
        self.unsubscribe: Callable[[], None] | None = None

    def detach(self) -> Transport | None:
        """Stop listening to the current transport and hand it back."""
        if self.unsubscribe:
            self.unsubscribe()
            self.unsubscribe = None
        transport, self.transport = self.transport, None
        return transport


class SessionOrchestrator:
    """
    Manages the lifecycle of WhatsApp sessions.

    Responsibilities:
    - Create and destroy sessions
    - Drive each session's state machine from transport events
    - Reconnect dropped sessions with backoff
    - Publish session and message events
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        auth_store: AuthStore,
        policy: ReconnectPolicy | None = None,
        auto_reconnect: bool = True,
        on_message: MessageCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            transport_factory: Builds a transport from (session_id, credentials)
            auth_store: Credential store
            policy: Reconnect policy (defaults to 5 attempts, 3s base, x1.5)
            auto_reconnect: Whether non-logout closes trigger a reboot
            on_message: Optional callback for every inbound message (sync or async)
            sleep: Awaitable sleep in seconds, used for reconnect delays
        """
        self.transport_factory = transport_factory
        self.auth_store = auth_store
        self.policy = policy or ReconnectPolicy()
        self.auto_reconnect = auto_reconnect
        self.on_message = on_message
        self.events = EventChannel()
        self._sleep = sleep
        self._sessions: dict[str, _SessionRecord] = {}
        self._reconnect_tasks: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_info(self, session_id: str) -> SessionInfo | None:
        record = self._sessions.get(session_id)
        return record.info.snapshot() if record else None

    def list_sessions(self) -> list[SessionInfo]:
        return [record.info.snapshot() for record in self._sessions.values()]

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_transport(self, session_id: str) -> Transport | None:
        record = self._sessions.get(session_id)
        return record.transport if record else None

    def has_pending_reconnect(self, session_id: str) -> bool:
        return session_id in self._reconnect_tasks

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_session(self, session_id: str) -> SessionInfo:
        """
        Create and boot a session.

        Args:
            session_id: Unique session key

        Returns:
            Initial snapshot (status=initializing); later transitions are
            published on the event channel

        Raises:
            DuplicateSession: If the id is already registered
            AuthLoadFailure: If stored credentials cannot be loaded
            ConnectFailure: If the transport cannot be started
        """
        if session_id in self._sessions:
            raise DuplicateSession(f"Session already exists: {session_id}", details={"session_id": session_id})

        logger.info(f"Creating session {session_id}", extra={"session_id": session_id})

        record = _SessionRecord(session_id)
        self._sessions[session_id] = record
        initial = record.info.snapshot()

        self._publish(SessionCreated(session_id=session_id))
        self._publish_status(record)

        try:
            await self._boot(session_id, record)
        except (AuthLoadFailure, ConnectFailure) as e:
            if self._sessions.get(session_id) is record:
                del self._sessions[session_id]
                # A close seen during connect may have scheduled a reboot
                reconnect = self._reconnect_tasks.pop(session_id, None)
                if reconnect is not None:
                    reconnect.cancel()
            record.info.status = SessionStatus.DISCONNECTED
            record.info.last_error = str(e)
            self._publish_status(record)
            logger.error(f"Failed to create session {session_id}: {e}", extra={"session_id": session_id})
            raise

        return initial

    async def destroy_session(self, session_id: str) -> None:
        """
        Close a session's transport and forget the session.

        Raises:
            SessionNotFound: If the id is not registered
        """
        # Registry removal and reconnect cancellation happen before the
        # first await, so a scheduled reboot can never see this session again.
        record = self._sessions.pop(session_id, None)
        if record is None:
            raise SessionNotFound(f"Session not found: {session_id}", details={"session_id": session_id})

        reconnect_task = self._reconnect_tasks.pop(session_id, None)
        if reconnect_task is not None:
            reconnect_task.cancel()

        transport = record.detach()
        if transport is not None:
            await self._close_transport(session_id, transport)

        self._publish(SessionDestroyed(session_id=session_id))
        logger.info(f"Session {session_id} destroyed", extra={"session_id": session_id})

    async def wait_for_connected(self, session_id: str, timeout_ms: float = 60_000) -> SessionInfo:
        """
        Wait until a session is connected.

        Raises:
            SessionNotFound: If the session is unknown or destroyed while waiting
            LoggedOut: If the session is (or becomes) logged out
            ConnectTimeout: If the session does not connect within timeout_ms
        """
        record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFound(f"Session not found: {session_id}", details={"session_id": session_id})
        if record.info.status == SessionStatus.CONNECTED:
            return record.info.snapshot()
        if record.info.status == SessionStatus.LOGGED_OUT:
            raise LoggedOut(f"Session {session_id} was logged out", details={"session_id": session_id})

        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_event(event: GatewayEvent) -> None:
            if future.done() or event.session_id != session_id:
                return
            if isinstance(event, SessionDestroyed):
                future.set_exception(SessionNotFound(f"Session {session_id} was destroyed"))
            elif isinstance(event, SessionStatusChanged):
                if event.info.status == SessionStatus.CONNECTED:
                    future.set_result(event.info.snapshot())
                elif event.info.status == SessionStatus.LOGGED_OUT:
                    future.set_exception(LoggedOut(f"Session {session_id} was logged out"))

        with self.events.scoped(on_event, kinds={SessionEventType.STATUS, SessionEventType.DESTROYED}):
            try:
                return await asyncio.wait_for(future, timeout_ms / 1000)
            except asyncio.TimeoutError:
                raise ConnectTimeout(
                    f"Session {session_id} did not connect within {timeout_ms}ms",
                    details={"session_id": session_id, "timeout_ms": timeout_ms},
                ) from None

    async def shutdown(self) -> None:
        """Destroy every session and wait for pending credential saves."""
        for session_id in list(self._sessions):
            try:
                await self.destroy_session(session_id)
            except SessionNotFound:
                pass

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Boot and reconnect
    # ------------------------------------------------------------------

    def _is_current(self, session_id: str, record: _SessionRecord) -> bool:
        return self._sessions.get(session_id) is record

    async def _boot(self, session_id: str, record: _SessionRecord) -> bool:
        """
        Load credentials and start a fresh transport for a session.

        Returns:
            False if the session was destroyed while booting
        """
        try:
            credentials = await self.auth_store.load(session_id)
        except Exception as e:
            raise AuthLoadFailure(
                f"Failed to load credentials for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        if not self._is_current(session_id, record):
            return False

        try:
            transport = self.transport_factory(session_id, credentials)
        except Exception as e:
            raise ConnectFailure(
                f"Failed to build transport for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        record.transport = transport
        try:
            record.unsubscribe = transport.subscribe(
                lambda event: self._on_transport_event(session_id, record, transport, event)
            )
        except Exception as e:
            if record.transport is transport:
                record.detach()
            await self._close_transport(session_id, transport)
            raise ConnectFailure(
                f"Failed to subscribe to transport for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        try:
            await transport.connect()
        except asyncio.CancelledError:
            if record.transport is transport:
                record.detach()
            await self._close_transport(session_id, transport)
            raise
        except Exception as e:
            if record.transport is transport:
                record.detach()
            await self._close_transport(session_id, transport)
            raise ConnectFailure(
                f"Failed to connect session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        if not self._is_current(session_id, record):
            await self._close_transport(session_id, transport)
            return False

        logger.debug(
            f"Booted session {session_id}",
            extra={"session_id": session_id, "has_credentials": credentials is not None},
        )
        return True

    def _schedule_reconnect(self, session_id: str, record: _SessionRecord) -> None:
        """Apply the reconnect decision after a non-logout close."""
        if not self.auto_reconnect:
            return

        info = record.info
        decision = next_reconnect_delay_ms(self.policy, info.reconnect_attempts)

        if decision.exhausted:
            info.reconnect_exhausted = True
            info.last_error = RECONNECT_EXHAUSTED_ERROR
            logger.error(
                f"Max reconnect attempts reached for session {session_id}",
                extra={"session_id": session_id, "attempts": info.reconnect_attempts},
            )
            self._publish_status(record)
            self._publish(ReconnectExhaustedEvent(session_id=session_id, attempts=info.reconnect_attempts))
            return

        info.reconnect_attempts = decision.attempt

        previous = self._reconnect_tasks.pop(session_id, None)
        if previous is not None and previous is not asyncio.current_task():
            previous.cancel()

        self._reconnect_tasks[session_id] = asyncio.create_task(
            self._reconnect_after(session_id, record, decision.delay_ms)
        )

        logger.info(
            f"Reconnecting session {session_id}",
            extra={"session_id": session_id, "attempt": decision.attempt, "delay_ms": decision.delay_ms},
        )
        self._publish_status(record)
        self._publish(ReconnectScheduled(session_id=session_id, attempt=decision.attempt, delay_ms=decision.delay_ms))

    async def _reconnect_after(self, session_id: str, record: _SessionRecord, delay_ms: float) -> None:
        this_task = asyncio.current_task()
        try:
            await self._sleep(delay_ms / 1000)
            if not self._is_current(session_id, record):
                return

            record.info.status = SessionStatus.INITIALIZING
            self._publish_status(record)

            try:
                await self._boot(session_id, record)
            except (AuthLoadFailure, ConnectFailure) as e:
                if not self._is_current(session_id, record):
                    return
                logger.warning(
                    f"Reconnect of session {session_id} failed: {e}",
                    extra={"session_id": session_id, "attempt": record.info.reconnect_attempts},
                )
                self._mark_disconnected(session_id, record, str(e))
            except Exception as e:
                if not self._is_current(session_id, record):
                    return
                logger.error(
                    f"Unexpected error reconnecting session {session_id}: {e}",
                    extra={"session_id": session_id, "attempt": record.info.reconnect_attempts},
                    exc_info=True,
                )
                transport = record.detach()
                if transport is not None:
                    await self._close_transport(session_id, transport)
                self._mark_disconnected(session_id, record, str(e))
        finally:
            if self._reconnect_tasks.get(session_id) is this_task:
                del self._reconnect_tasks[session_id]

    async def _close_transport(self, session_id: str, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.warning(
                f"Error closing transport for session {session_id}: {e}",
                extra={"session_id": session_id},
            )

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _on_transport_event(
        self,
        session_id: str,
        record: _SessionRecord,
        transport: Transport,
        event: TransportEvent,
    ) -> None:
        if not self._is_current(session_id, record) or record.transport is not transport:
            logger.debug(
                f"Ignoring {type(event).__name__} from stale transport",
                extra={"session_id": session_id},
            )
            return

        try:
            self._apply_transport_event(session_id, record, transport, event)
        except Exception as e:
            logger.error(
                f"Failed to handle {type(event).__name__} for session {session_id}: {e}",
                extra={"session_id": session_id},
                exc_info=True,
            )

    def _apply_transport_event(
        self,
        session_id: str,
        record: _SessionRecord,
        transport: Transport,
        event: TransportEvent,
    ) -> None:
        info = record.info

        if isinstance(event, QrIssued):
            info.qr = event.payload
            info.status = SessionStatus.QR_READY
            self._publish_status(record)
            self._publish(SessionQr(session_id=session_id, qr=event.payload))
            logger.info(f"QR ready for session {session_id}", extra={"session_id": session_id})

        elif isinstance(event, ConnectionOpen):
            user = event.user or transport.user
            info.qr = None
            info.status = SessionStatus.CONNECTED
            info.connected_at = datetime.now(timezone.utc)
            info.phone_number = user.phone_number if user else None
            info.display_name = user.name if user else None
            info.last_error = None
            info.reconnect_attempts = 0
            info.reconnect_exhausted = False
            self._publish_status(record)
            self._publish(SessionConnected(session_id=session_id, phone_number=info.phone_number or ""))
            logger.info(
                f"Session {session_id} connected",
                extra={"session_id": session_id, "phone": info.phone_number},
            )

        elif isinstance(event, ConnectionClose):
            closed = record.detach()
            if closed is not None:
                self._spawn(self._close_transport(session_id, closed), session_id)

            if event.is_logout:
                info.status = SessionStatus.LOGGED_OUT
                info.qr = None
                info.last_error = "Logged out"
                self._publish_status(record)
                self._publish(SessionDisconnected(session_id=session_id, reason="logged_out"))
                logger.warning(f"Session {session_id} logged out", extra={"session_id": session_id})
            else:
                self._mark_disconnected(session_id, record, event.reason or f"closed with code {event.code}")

        elif isinstance(event, CredentialUpdate):
            self._spawn(self._save_credentials(session_id, event.credentials), session_id)

        elif isinstance(event, MessagesUpsert):
            if event.type == "notify":
                self._handle_messages(session_id, event.messages)

        elif isinstance(event, Passthrough):
            self._publish(TransportEventForwarded(session_id=session_id, event_kind=event.kind, data=event.data))

        else:
            logger.debug(f"Unhandled transport event {event!r}", extra={"session_id": session_id})

    def _mark_disconnected(self, session_id: str, record: _SessionRecord, reason: str) -> None:
        record.info.status = SessionStatus.DISCONNECTED
        record.info.qr = None
        record.info.last_error = reason
        self._publish_status(record)
        self._publish(SessionDisconnected(session_id=session_id, reason=reason))
        logger.info(f"Session {session_id} disconnected: {reason}", extra={"session_id": session_id})
        self._schedule_reconnect(session_id, record)

    def _handle_messages(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        for raw in messages:
            try:
                message = parse_inbound_message(raw)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping unparseable message: {e}", extra={"session_id": session_id})
                continue

            if message.from_me:
                continue

            self._publish(MessageReceived(session_id=session_id, message=message))

            if self.on_message is not None:
                try:
                    result = self.on_message(session_id, message)
                except Exception as e:
                    logger.error(f"on_message callback failed: {e}", extra={"session_id": session_id}, exc_info=True)
                    continue
                if inspect.isawaitable(result):
                    self._spawn(result, session_id)

    async def _save_credentials(self, session_id: str, credentials: Credentials) -> None:
        try:
            await self.auth_store.save(session_id, credentials)
        except Exception as e:
            logger.warning(
                f"Failed to save credentials for session {session_id}: {e}",
                extra={"session_id": session_id},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _publish(self, event: GatewayEvent) -> None:
        self.events.publish(event)

    def _publish_status(self, record: _SessionRecord) -> None:
        self.events.publish(SessionStatusChanged(info=record.info.snapshot()))

    def _spawn(self, awaitable: Awaitable[Any], session_id: str) -> asyncio.Task:
        """Run background work the orchestrator owns until it finishes."""
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._background.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(
                    f"Background task failed for session {session_id}: {finished.exception()}",
                    extra={"session_id": session_id},
                )

        task.add_done_callback(_done)
        return task
