"""
Gateway Errors

Error taxonomy shared by the session orchestrator, the outbound queue,
the webhook dispatcher and the credential stores.
"""

from typing import Any


class GatewayError(Exception):
    """Base error for the WhatsApp gateway."""

    default_code = "GATEWAY_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or self.default_code
        self.details = details or {}


class DuplicateSession(GatewayError):
    """A session with this id is already registered."""

    default_code = "DUPLICATE_SESSION"


class SessionNotFound(GatewayError, LookupError):
    """No session is registered under this id."""

    default_code = "SESSION_NOT_FOUND"


class AuthLoadFailure(GatewayError):
    """Credentials could not be loaded while creating a session."""

    default_code = "AUTH_LOAD_FAILURE"


class ConnectFailure(GatewayError):
    """The transport failed to start while creating a session."""

    default_code = "CONNECT_FAILURE"


class SessionNotConnected(GatewayError):
    """An outbound operation ran while its session had no open connection."""

    default_code = "SESSION_NOT_CONNECTED"


class LoggedOut(GatewayError):
    """
    The session was logged out by the remote side.

    Only raised by wait_for_connected; everywhere else logout is surfaced
    through session status and events.
    """

    default_code = "LOGGED_OUT"


class ConnectTimeout(GatewayError, TimeoutError):
    """The session did not connect within the requested time."""

    default_code = "CONNECT_TIMEOUT"


class ReconnectExhausted(GatewayError):
    """Reconnect attempts ran out. Carried on events, never raised."""

    default_code = "RECONNECT_EXHAUSTED"


class Cancelled(GatewayError):
    """A queued outbound task was removed before it was dispatched."""

    default_code = "CANCELLED"


class QueueClosed(GatewayError):
    """The outbound queue no longer accepts tasks."""

    default_code = "QUEUE_CLOSED"


class DeliveryExhausted(GatewayError):
    """A webhook delivery failed on every attempt. Passed to on_error only."""

    default_code = "DELIVERY_EXHAUSTED"


class AuthStoreError(GatewayError):
    """A credential store could not read or write an entry."""

    default_code = "AUTH_STORE_ERROR"
