"""
Webhook Models

Endpoint configuration and the JSON payload delivered to endpoints.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urlparse

from whatsapp_gateway.contracts.event_types import DEFAULT_WEBHOOK_EVENTS

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1_000

ErrorCallback = Callable[[str, Exception], None]
SuccessCallback = Callable[[str, int], None]


@dataclass(frozen=True)
class WebhookEndpoint:
    """
    A registered delivery target.

    Attributes:
        id: Registry key
        url: Absolute http(s) URL receiving POSTs
        events: Event kinds this endpoint receives
        secret: Shared secret; enables X-Webhook-Secret and the HMAC signature
        headers: Extra headers sent with every delivery
        timeout_ms: Per-request timeout
        retries: Extra attempts after the first failure
        retry_delay_ms: Base retry delay, doubled per attempt
        on_error: Called once with (event, DeliveryExhausted) after the last failure
        on_success: Called with (event, status_code) on delivery
    """

    id: str
    url: str
    events: frozenset[str] = DEFAULT_WEBHOOK_EVENTS
    secret: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_ms: float = DEFAULT_TIMEOUT_MS
    retries: int = DEFAULT_RETRIES
    retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS
    on_error: ErrorCallback | None = field(default=None, compare=False)
    on_success: SuccessCallback | None = field(default=None, compare=False)

    def __post_init__(self):
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Webhook URL must be an absolute http(s) URL: {self.url!r}")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be >= 0")
        if self.secret is not None and not self.secret.isascii():
            raise ValueError("Webhook secret must be ASCII")
        for name, value in self.headers.items():
            if not str(name).isascii() or not str(value).isascii():
                raise ValueError(f"Webhook header {name!r} must be ASCII")

    def subscribes_to(self, event: str) -> bool:
        return event in self.events

    def retry_delay_seconds(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (0-based)."""
        return self.retry_delay_ms * (2 ** attempt) / 1000


@dataclass(frozen=True)
class WebhookPayload:
    """Body of every webhook delivery."""

    event: str
    data: Any
    timestamp: int
    webhook_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "data": self.data,
            "timestamp": self.timestamp,
            "webhookId": self.webhook_id,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), default=str).encode("utf-8")
