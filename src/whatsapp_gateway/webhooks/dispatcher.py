"""
Event Fan-out Dispatcher

Delivers gateway events to any number of HTTP endpoints:
1. Snapshots the endpoint registry for each event
2. Starts one independent delivery per subscribed endpoint
3. Retries each delivery with exponential backoff
4. Reports exhausted deliveries through the endpoint's on_error callback

A slow or failing endpoint never blocks the producer or other endpoints.
Deliveries are attempted at most retries + 1 times and are not persisted.
"""

import asyncio
import logging
import random
import string
import time
from typing import Any, Awaitable, Callable, Iterable

import httpx

from whatsapp_gateway.contracts.events import GatewayEvent
from whatsapp_gateway.errors import DeliveryExhausted
from whatsapp_gateway.sessions.channel import EventChannel, Subscription
from whatsapp_gateway.webhooks.models import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    ErrorCallback,
    SuccessCallback,
    WebhookEndpoint,
    WebhookPayload,
)
from whatsapp_gateway.webhooks.signing import SIGNATURE_HEADER, sign_payload

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class WebhookHTTPError(Exception):
    """Non-2xx response from an endpoint."""

    def __init__(self, status_code: int):
        super().__init__(f"Webhook HTTP {status_code}")
        self.status_code = status_code


def generate_webhook_id() -> str:
    """Dispatcher instance id: wh_<epoch ms>_<6 base36 chars>."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"wh_{int(time.time() * 1000)}_{suffix}"


class EventFanoutDispatcher:
    """
    Fans gateway events out to webhook endpoints.

    Usage
    -----
    >>> dispatcher = EventFanoutDispatcher()
    >>> dispatcher.add_endpoint("crm", "https://crm.example.com/hooks/wa", events={"messages.upsert"})
    >>> dispatcher.attach(orchestrator.events)
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        webhook_id: str | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            client: HTTP client to deliver with; one is created (and owned) if omitted
            sleep: Awaitable sleep in seconds, used between retries
            webhook_id: Instance id sent with every payload for receiver dedup
        """
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.webhook_id = webhook_id or generate_webhook_id()
        self._endpoints: dict[str, WebhookEndpoint] = {}
        self._deliveries: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Endpoint registry
    # ------------------------------------------------------------------

    def add_endpoint(
        self,
        endpoint_id: str,
        url: str,
        events: Iterable[str] | None = None,
        secret: str | None = None,
        headers: dict[str, str] | None = None,
        timeout_ms: float = DEFAULT_TIMEOUT_MS,
        retries: int = DEFAULT_RETRIES,
        retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS,
        on_error: ErrorCallback | None = None,
        on_success: SuccessCallback | None = None,
    ) -> "EventFanoutDispatcher":
        """
        Register (or replace) an endpoint.

        Raises:
            ValueError: If the URL or delivery settings are invalid
        """
        options: dict[str, Any] = {}
        if events is not None:
            options["events"] = frozenset(str(event) for event in events)

        endpoint = WebhookEndpoint(
            id=endpoint_id,
            url=url,
            secret=secret,
            headers=dict(headers or {}),
            timeout_ms=timeout_ms,
            retries=retries,
            retry_delay_ms=retry_delay_ms,
            on_error=on_error,
            on_success=on_success,
            **options,
        )

        # Copy-on-write so in-flight dispatches keep their snapshot
        endpoints = dict(self._endpoints)
        endpoints[endpoint_id] = endpoint
        self._endpoints = endpoints

        logger.info(f"Webhook endpoint registered", extra={"endpoint_id": endpoint_id, "url": url})
        return self

    def remove_endpoint(self, endpoint_id: str) -> bool:
        if endpoint_id not in self._endpoints:
            return False
        endpoints = dict(self._endpoints)
        del endpoints[endpoint_id]
        self._endpoints = endpoints
        logger.info(f"Webhook endpoint removed", extra={"endpoint_id": endpoint_id})
        return True

    @property
    def endpoints(self) -> dict[str, WebhookEndpoint]:
        return dict(self._endpoints)

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def attach(
        self,
        channel: EventChannel,
        kinds: Iterable[str] | None = None,
    ) -> Subscription:
        """
        Forward events published on a channel.

        Args:
            channel: Event channel (e.g. SessionOrchestrator.events)
            kinds: Event kinds to forward; None forwards everything and lets
                each endpoint's subscription decide
        """

        def forward(event: GatewayEvent) -> None:
            self.dispatch(event.kind, event.to_dict())

        return channel.subscribe(forward, kinds)

    def dispatch(self, event: str, data: Any) -> list[asyncio.Task]:
        """
        Start delivering an event to every subscribed endpoint.

        Returns immediately; returns the delivery tasks started.
        """
        event = str(event)
        endpoints = self._endpoints  # snapshot; registry is copy-on-write

        payload = WebhookPayload(
            event=event,
            data=data,
            timestamp=int(time.time() * 1000),
            webhook_id=self.webhook_id,
        )
        body = payload.to_json()

        tasks = []
        for endpoint in endpoints.values():
            if not endpoint.subscribes_to(event):
                continue
            task = asyncio.create_task(self._deliver(endpoint, event, body))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            tasks.append(task)

        if not tasks:
            logger.debug(f"No endpoints subscribed to {event}")
        return tasks

    async def send(self, event: str, data: Any) -> None:
        """Dispatch an event and wait until every delivery has finished."""
        tasks = self.dispatch(event, data)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending deliveries and close the owned HTTP client."""
        for task in list(self._deliveries):
            task.cancel()
        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    def _build_headers(self, endpoint: WebhookEndpoint, event: str, body: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
            "X-Webhook-Id": self.webhook_id,
            "X-Event": event,
            **endpoint.headers,
        }
        if endpoint.secret:
            headers["X-Webhook-Secret"] = endpoint.secret
            headers[SIGNATURE_HEADER] = sign_payload(body, endpoint.secret)
        return headers

    async def _post(self, endpoint: WebhookEndpoint, event: str, body: bytes) -> int:
        response = await self._get_client().post(
            endpoint.url,
            content=body,
            headers=self._build_headers(endpoint, event, body),
            timeout=endpoint.timeout_ms / 1000,
        )
        if not 200 <= response.status_code < 300:
            raise WebhookHTTPError(response.status_code)
        return response.status_code

    async def _deliver(self, endpoint: WebhookEndpoint, event: str, body: bytes) -> None:
        last_error: Exception | None = None
        attempts = 0

        for attempt in range(endpoint.retries + 1):
            attempts = attempt + 1
            try:
                status_code = await self._post(endpoint, event, body)
            except (httpx.HTTPError, WebhookHTTPError) as e:
                last_error = e
                if attempt < endpoint.retries:
                    delay = endpoint.retry_delay_seconds(attempt)
                    logger.warning(
                        f"Webhook failed, retrying: {e}",
                        extra={"endpoint_id": endpoint.id, "event": event, "attempt": attempt + 1, "delay": delay},
                    )
                    await self._sleep(delay)
                continue
            except Exception as e:
                # Request building failed; retrying would fail the same way
                last_error = e
                logger.error(
                    f"Webhook request could not be sent: {e}",
                    extra={"endpoint_id": endpoint.id, "event": event, "attempt": attempt + 1},
                    exc_info=True,
                )
                break

            logger.debug(
                f"Webhook delivered",
                extra={"endpoint_id": endpoint.id, "event": event, "status_code": status_code, "attempt": attempt + 1},
            )
            self._callback(endpoint.on_success, endpoint, event, status_code)
            return

        error = DeliveryExhausted(
            f"Webhook delivery to {endpoint.id} failed after {attempts} attempts: {last_error}",
            details={"endpoint_id": endpoint.id, "event": event, "attempts": attempts},
        )
        logger.error(
            f"Webhook delivery failed after {attempts} attempts",
            extra={"endpoint_id": endpoint.id, "event": event, "error": str(last_error)},
        )
        self._callback(endpoint.on_error, endpoint, event, error)

    def _callback(self, callback: Callable[..., Any] | None, endpoint: WebhookEndpoint, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(
                f"Webhook callback failed: {e}",
                extra={"endpoint_id": endpoint.id},
                exc_info=True,
            )
