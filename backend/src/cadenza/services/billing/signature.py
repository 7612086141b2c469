"""HMAC signature validation for Stripe-format billing webhooks.

The signature header has the form ``t=<unix timestamp>,v1=<hex>[,v1=<hex>...]``.
Each v1 value is HMAC-SHA256 over ``"<t>.<raw body>"`` keyed by the webhook
signing secret. Several v1 entries appear while a secret is being rolled.

Security Note:
    verify_stripe_signature MUST run before the payload is parsed or any
    database row is written. Return 401 Unauthorized when it fails.
"""

import hashlib
import hmac
import time

# Site setting key holding the secret when STRIPE_WEBHOOK_SECRET is unset
WEBHOOK_SECRET_SETTING = "stripe_webhook_secret"


def parse_signature_header(header: str) -> tuple[int | None, list[str]]:
    """Split a signature header into its timestamp and v1 signatures.

    Unknown schemes (v0 etc) are ignored. A missing or non-numeric timestamp
    comes back as None.
    """
    timestamp: int | None = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            signatures.append(value.lower())
    return timestamp, signatures


def sign_payload(raw_body: bytes, secret: str, timestamp: int) -> str:
    """Compute the hex v1 signature for a payload."""
    signed_payload = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(
        key=secret.encode("utf-8"), msg=signed_payload, digestmod=hashlib.sha256
    ).hexdigest()


def verify_stripe_signature(
    raw_body: bytes,
    header: str,
    secret: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> bool:
    """Validate a billing webhook signature.

    Args:
        raw_body: Raw request body bytes, exactly as received
        header: Value of the Stripe-Signature header
        secret: Webhook signing secret
        tolerance_seconds: Maximum age of the signed timestamp
        now: Current unix time (defaults to time.time())

    Returns:
        True if one of the v1 signatures matches and the timestamp is fresh,
        False otherwise.
    """
    if not secret or not header:
        return False

    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        return False

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        return False

    expected = sign_payload(raw_body, secret, timestamp)
    # Constant-time comparison against every candidate
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)
