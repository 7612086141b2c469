"""Billing webhook endpoint.

Signature verification runs as a dependency, so an unsigned or tampered
request is rejected with 401 before the body is parsed or any row is written.
"""

import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from cadenza.api.dependencies import get_uow_factory, validate_billing_signature
from cadenza.services.billing import apply_billing_event

logger = structlog.get_logger()
router = APIRouter()


@router.post("/billing")
async def receive_billing_webhook(
    raw_body: bytes = Depends(validate_billing_signature),
    uow_factory=Depends(get_uow_factory),
):
    """Apply a subscription lifecycle event to the matching user.

    Returns:
        200 with {"received": true, "handled": bool} for every verified event,
        including event types that are ignored

    Raises:
        HTTPException 400: Payload is not a JSON object
        HTTPException 401: Missing or invalid signature (from dependency)
    """
    try:
        event = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("billing_webhook.invalid_json", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")

    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event payload")

    logger.info("billing_webhook.received", event_type=event.get("type"), event_id=event.get("id"))

    async with await uow_factory() as uow:
        result = await apply_billing_event(uow, event)

    return {"received": True, "handled": result.handled, "event_type": result.event_type}
