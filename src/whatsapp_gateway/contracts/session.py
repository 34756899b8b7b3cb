"""
Session Contracts

Session status and the read-only snapshot handed to callers.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Lifecycle states of a session."""

    INITIALIZING = "initializing"
    QR_READY = "qr_ready"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"

    def __str__(self) -> str:
        return self.value


@dataclass
class SessionInfo:
    """
    Snapshot of a session.

    The orchestrator keeps the live instance; everything it hands out is a
    copy made with snapshot().
    """

    id: str
    status: SessionStatus = SessionStatus.INITIALIZING
    qr: str | None = None
    phone_number: str | None = None
    display_name: str | None = None
    connected_at: datetime | None = None
    last_error: str | None = None
    reconnect_attempts: int = 0
    reconnect_exhausted: bool = False

    def snapshot(self) -> "SessionInfo":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        data["connected_at"] = self.connected_at.isoformat() if self.connected_at else None
        return data
