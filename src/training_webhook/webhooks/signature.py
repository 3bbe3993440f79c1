"""
Typeform webhook signature verification.

Typeform signs the raw request body with HMAC-SHA256 using the webhook secret
and sends ``sha256=<base64 digest>`` in the ``Typeform-Signature`` header.
"""

import base64
import hashlib
import hmac

from loguru import logger

SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(body: str | bytes, secret: str | bytes) -> str:
    """Compute the ``sha256=<base64>`` signature for a request body."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(body), hashlib.sha256).digest()
    return SIGNATURE_PREFIX + base64.b64encode(digest).decode("ascii")


def verify_signature(
    body: str | bytes, signature: str | None, secret: str | bytes | None
) -> bool:
    """
    Check a presented signature against the body and shared secret.

    Args:
        body: Raw request body exactly as received
        signature: Value of the signature header
        secret: Shared webhook secret

    Returns:
        True if the signature matches, False otherwise
    """
    if not signature or not secret:
        logger.warning("Missing signature or webhook secret, rejecting request")
        return False

    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), _to_bytes(signature)):
        logger.warning(f"Webhook signature mismatch: received {signature[:15]}...")
        return False

    return True
