"""
Event Channel

Typed publish/subscribe channel for gateway events. Handlers run
synchronously in publish order; a failing handler is logged and does not
affect the others.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator

from whatsapp_gateway.contracts.events import GatewayEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[GatewayEvent], None]


class Subscription:
    """Handle for a registered handler. close() is idempotent."""

    def __init__(
        self,
        channel: "EventChannel",
        handler: EventHandler,
        kinds: frozenset[str] | None,
    ):
        self._channel = channel
        self.handler = handler
        self.kinds = kinds
        self.closed = False

    def matches(self, event: GatewayEvent) -> bool:
        return self.kinds is None or event.kind in self.kinds

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._remove(self)


class EventChannel:
    """
    Publish/subscribe channel for gateway events.

    Usage
    -----
    >>> channel = EventChannel()
    >>> sub = channel.subscribe(print, kinds={"session.status"})
    >>> channel.publish(event)
    >>> sub.close()
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        handler: EventHandler,
        kinds: Iterable[str] | None = None,
    ) -> Subscription:
        """
        Register a handler.

        Args:
            handler: Called with each matching event
            kinds: Event kinds to receive; None receives everything
        """
        subscription = Subscription(
            self,
            handler,
            frozenset(str(kind) for kind in kinds) if kinds is not None else None,
        )
        self._subscriptions.append(subscription)
        return subscription

    @contextmanager
    def scoped(
        self,
        handler: EventHandler,
        kinds: Iterable[str] | None = None,
    ) -> Iterator[Subscription]:
        """Subscribe for the duration of a with-block."""
        subscription = self.subscribe(handler, kinds)
        try:
            yield subscription
        finally:
            subscription.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: GatewayEvent) -> None:
        """Deliver an event to every matching subscriber."""
        for subscription in list(self._subscriptions):
            if subscription.closed or not subscription.matches(event):
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler failed for {event.kind}: {e}",
                    exc_info=True,
                )

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
