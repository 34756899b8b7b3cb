"""
Webhooks

Fan-out delivery of gateway events to HTTP endpoints.
"""

from whatsapp_gateway.webhooks.dispatcher import EventFanoutDispatcher, WebhookHTTPError
from whatsapp_gateway.webhooks.models import WebhookEndpoint, WebhookPayload
from whatsapp_gateway.webhooks.signing import sign_payload, validate_signature

__all__ = [
    "EventFanoutDispatcher",
    "WebhookHTTPError",
    "WebhookEndpoint",
    "WebhookPayload",
    "sign_payload",
    "validate_signature",
]
