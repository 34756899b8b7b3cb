"""
Webhook Signing

HMAC-SHA256 signatures for outgoing webhook bodies, and the matching
check for receivers.
"""

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str) -> str:
    """
    Compute the signature header value for a body.

    Returns:
        "sha256=<hex digest>"
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def validate_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
) -> bool:
    """
    Validate a webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: X-Webhook-Signature header value
        secret: Shared endpoint secret

    Returns:
        True if signature is valid
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    if not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature format")
        return False

    return hmac.compare_digest(sign_payload(payload, secret), signature_header)
