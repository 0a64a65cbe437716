"""
Signature check for inbound payment-provider webhooks.

The provider signs ``"<timestamp>.<raw body>"`` with HMAC-SHA256 under the
endpoint secret and sends ``Stripe-Signature: t=<timestamp>,v1=<hex>[,v1=...]``.
Only the check lives here; event handling belongs to the billing side.
"""

import time
from typing import List, Optional, Tuple

from ascent_common.logging import get_logger

from .initdata.signer import constant_time_equals, sign
from .models import ErrorKind, Rejected

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE = 300

logger = get_logger("auth.webhooks")


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    """Extract the timestamp and every ``v1`` signature from the header."""
    timestamp = None
    signatures = []
    for item in header.split(","):
        name, _, value = item.strip().partition("=")
        if name == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif name == SIGNATURE_SCHEME and value:
            signatures.append(value)
    return timestamp, signatures


def compute_webhook_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload
    return sign(secret.encode("utf-8"), signed_payload).hex()


def verify_webhook_signature(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    *,
    tolerance: int = DEFAULT_TOLERANCE,
    now: Optional[float] = None,
) -> Optional[Rejected]:
    """Return None when the webhook is authentic, otherwise the rejection."""
    if not secret:
        logger.error("Webhook signature check attempted without a webhook secret")
        return Rejected(ErrorKind.SERVER_MISCONFIGURATION, "webhook secret not configured")
    if not header:
        return Rejected(ErrorKind.MISSING_CREDENTIAL, "missing signature header")

    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        return Rejected(ErrorKind.MALFORMED_CREDENTIAL, "signature header lacks timestamp or v1 signature")

    expected = compute_webhook_signature(secret, timestamp, payload)
    # Evaluate every candidate so the match position is not observable.
    matched = False
    for candidate in signatures:
        matched |= constant_time_equals(expected, candidate)
    if not matched:
        logger.info("Webhook rejected", reason=ErrorKind.SIGNATURE_MISMATCH.value)
        return Rejected(ErrorKind.SIGNATURE_MISMATCH, "no v1 signature matched")

    current = time.time() if now is None else now
    if tolerance > 0 and abs(current - timestamp) > tolerance:
        logger.info("Webhook rejected", reason=ErrorKind.EXPIRED.value)
        return Rejected(ErrorKind.EXPIRED, "webhook timestamp outside tolerance")

    return None
