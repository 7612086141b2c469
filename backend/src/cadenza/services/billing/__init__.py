"""Billing webhook: signature verification and subscription event handling."""

from cadenza.services.billing.signature import (
    WEBHOOK_SECRET_SETTING,
    parse_signature_header,
    sign_payload,
    verify_stripe_signature,
)
from cadenza.services.billing.subscription_events import BillingEventResult, apply_billing_event

__all__ = [
    "WEBHOOK_SECRET_SETTING",
    "BillingEventResult",
    "apply_billing_event",
    "parse_signature_header",
    "sign_payload",
    "verify_stripe_signature",
]
