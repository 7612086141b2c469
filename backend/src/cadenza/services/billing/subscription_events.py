"""Map billing provider events onto user entitlement fields.

Handled event types:
    checkout.session.completed      plan chosen, not yet paid (status inactive)
    customer.subscription.created   subscription id stored, status from provider
    customer.subscription.updated   status mapping active / cancelled / inactive
    customer.subscription.deleted   downgrade to the free tier
    invoice.payment_succeeded       activate, extend period, reset monthly usage
    invoice.payment_failed          status inactive

Users are resolved by ``metadata.userId``, then by the stored subscription
id, then by the stored customer id. Events that cannot be matched to a user
are acknowledged without changes.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

import structlog

from cadenza.core.timezone import utcnow
from cadenza.models.user import PlanStatus, User
from cadenza.repositories.user import USAGE_COUNTERS
from cadenza.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass
class BillingEventResult:
    event_type: str
    handled: bool
    user_id: UUID | None = None
    reason: str | None = None


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _object_id(value: Any) -> str | None:
    """Provider references arrive either as an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _from_unix(value: Any) -> datetime | None:
    if not isinstance(value, (int, float)) or value <= 0:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_billing_cycle(start: datetime, cycle: str | None) -> datetime:
    """Advance a date by one billing cycle.

    Accepts both checkout names (weekly, monthly, yearly) and price interval
    names (week, month, year). Unknown cycles leave the date unchanged.
    """
    if cycle in ("weekly", "week"):
        return start + timedelta(days=7)
    if cycle in ("monthly", "month"):
        return _add_months(start, 1)
    if cycle in ("yearly", "year"):
        return _add_months(start, 12)
    return start


def map_subscription_status(provider_status: str | None) -> PlanStatus:
    if provider_status == "active":
        return PlanStatus.ACTIVE
    if provider_status in ("canceled", "unpaid"):
        return PlanStatus.CANCELLED
    return PlanStatus.INACTIVE


async def resolve_user(
    uow: UnitOfWork,
    metadata_user_id: Any = None,
    subscription_id: str | None = None,
    customer_id: str | None = None,
) -> User | None:
    user_id = _parse_uuid(metadata_user_id)
    if user_id is not None:
        user = await uow.users.get_by_id(user_id)
        if user is not None:
            return user
    if subscription_id:
        user = await uow.users.get_by_stripe_subscription_id(subscription_id)
        if user is not None:
            return user
    if customer_id:
        return await uow.users.get_by_stripe_customer_id(customer_id)
    return None


def _first_invoice_line(invoice: dict[str, Any]) -> dict[str, Any]:
    lines = (invoice.get("lines") or {}).get("data") or []
    return lines[0] if lines else {}


def _invoice_metadata(invoice: dict[str, Any]) -> dict[str, Any]:
    details = invoice.get("subscription_details") or {}
    return details.get("metadata") or _first_invoice_line(invoice).get("metadata") or {}


def _skipped(event_type: str, reason: str, **context: Any) -> BillingEventResult:
    logger.warning("billing.event_skipped", event_type=event_type, reason=reason, **context)
    return BillingEventResult(event_type=event_type, handled=False, reason=reason)


async def handle_checkout_completed(
    uow: UnitOfWork, event_type: str, session: dict[str, Any]
) -> BillingEventResult:
    metadata = session.get("metadata") or {}
    user_id = _parse_uuid(metadata.get("userId"))
    plan_id = _parse_uuid(metadata.get("planId"))
    if user_id is None or plan_id is None:
        return _skipped(
            event_type, "missing userId or planId metadata", session_id=session.get("id")
        )

    user = await uow.users.get_by_id(user_id)
    if user is None:
        return _skipped(event_type, "user not found", user_id=str(user_id))
    plan = await uow.plans.get_by_id(plan_id)
    if plan is None:
        return _skipped(event_type, "plan not found", plan_id=str(plan_id))

    start = utcnow()
    # Checkout completion can still be a trial or unpaid; payment activates the plan
    await uow.users.update_fields(
        user,
        subscription_plan_id=plan.id,
        plan_status=PlanStatus.INACTIVE,
        plan_start_date=start,
        plan_end_date=add_billing_cycle(start, metadata.get("billingCycle")),
        stripe_customer_id=_object_id(session.get("customer")),
        stripe_subscription_id=_object_id(session.get("subscription")),
        **{counter: 0 for counter in USAGE_COUNTERS},
    )
    return BillingEventResult(event_type=event_type, handled=True, user_id=user.id)


async def handle_subscription_changed(
    uow: UnitOfWork, event_type: str, subscription: dict[str, Any]
) -> BillingEventResult:
    metadata = subscription.get("metadata") or {}
    customer_id = _object_id(subscription.get("customer"))
    user = await resolve_user(uow, metadata.get("userId"), subscription.get("id"), customer_id)
    if user is None:
        return _skipped(event_type, "user not resolved", subscription_id=subscription.get("id"))

    fields: dict[str, Any] = {
        "stripe_subscription_id": subscription.get("id"),
        "plan_status": map_subscription_status(subscription.get("status")),
    }
    if customer_id and not user.stripe_customer_id:
        fields["stripe_customer_id"] = customer_id
    plan_id = _parse_uuid(metadata.get("planId"))
    if plan_id is not None and user.subscription_plan_id is None:
        if await uow.plans.get_by_id(plan_id) is not None:
            fields["subscription_plan_id"] = plan_id

    await uow.users.update_fields(user, **fields)
    return BillingEventResult(event_type=event_type, handled=True, user_id=user.id)


async def handle_subscription_deleted(
    uow: UnitOfWork, event_type: str, subscription: dict[str, Any]
) -> BillingEventResult:
    metadata = subscription.get("metadata") or {}
    user = await resolve_user(
        uow,
        metadata.get("userId"),
        subscription.get("id"),
        _object_id(subscription.get("customer")),
    )
    if user is None:
        return _skipped(event_type, "user not resolved", subscription_id=subscription.get("id"))

    await uow.users.update_fields(
        user,
        subscription_plan_id=None,
        plan_status=PlanStatus.FREE,
        plan_start_date=None,
        plan_end_date=None,
        stripe_subscription_id=None,
    )
    return BillingEventResult(event_type=event_type, handled=True, user_id=user.id)


async def handle_payment_succeeded(
    uow: UnitOfWork, event_type: str, invoice: dict[str, Any]
) -> BillingEventResult:
    subscription_id = _object_id(invoice.get("subscription"))
    if not subscription_id:
        return _skipped(event_type, "invoice has no subscription", invoice_id=invoice.get("id"))

    amount_paid = invoice.get("amount_paid")
    if isinstance(amount_paid, (int, float)) and amount_paid <= 0:
        # Zero-amount invoices are trials and do not activate the plan
        return _skipped(event_type, "zero amount invoice", invoice_id=invoice.get("id"))

    metadata = _invoice_metadata(invoice)
    user = await resolve_user(
        uow, metadata.get("userId"), subscription_id, _object_id(invoice.get("customer"))
    )
    if user is None:
        return _skipped(event_type, "user not resolved", subscription_id=subscription_id)

    fields: dict[str, Any] = {"plan_status": PlanStatus.ACTIVE}
    if user.subscription_plan_id is None:
        plan_id = _parse_uuid(metadata.get("planId"))
        if plan_id is None or await uow.plans.get_by_id(plan_id) is None:
            return _skipped(event_type, "user has no plan", user_id=str(user.id))
        fields["subscription_plan_id"] = plan_id

    line = _first_invoice_line(invoice)
    period_end = _from_unix((line.get("period") or {}).get("end"))
    if period_end is None:
        interval = ((line.get("price") or {}).get("recurring") or {}).get("interval")
        period_end = add_billing_cycle(user.plan_end_date or utcnow(), interval)
    fields["plan_end_date"] = period_end
    fields.update({counter: 0 for counter in USAGE_COUNTERS})

    await uow.users.update_fields(user, **fields)
    return BillingEventResult(event_type=event_type, handled=True, user_id=user.id)


async def handle_payment_failed(
    uow: UnitOfWork, event_type: str, invoice: dict[str, Any]
) -> BillingEventResult:
    subscription_id = _object_id(invoice.get("subscription"))
    if not subscription_id:
        return _skipped(event_type, "invoice has no subscription", invoice_id=invoice.get("id"))

    user = await resolve_user(
        uow,
        _invoice_metadata(invoice).get("userId"),
        subscription_id,
        _object_id(invoice.get("customer")),
    )
    if user is None:
        return _skipped(event_type, "user not resolved", subscription_id=subscription_id)

    await uow.users.update_fields(user, plan_status=PlanStatus.INACTIVE)
    return BillingEventResult(event_type=event_type, handled=True, user_id=user.id)


EventHandler = Callable[[UnitOfWork, str, dict[str, Any]], Awaitable[BillingEventResult]]

EVENT_HANDLERS: dict[str, EventHandler] = {
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.created": handle_subscription_changed,
    "customer.subscription.updated": handle_subscription_changed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_payment_succeeded,
    "invoice.payment_failed": handle_payment_failed,
}


async def apply_billing_event(uow: UnitOfWork, event: dict[str, Any]) -> BillingEventResult:
    """Dispatch one verified webhook event to its handler."""
    event_type = event.get("type") or ""
    data_object = (event.get("data") or {}).get("object") or {}

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("billing.event_ignored", event_type=event_type, event_id=event.get("id"))
        return BillingEventResult(
            event_type=event_type, handled=False, reason="unhandled event type"
        )

    result = await handler(uow, event_type, data_object)
    if result.handled:
        logger.info(
            "billing.event_applied",
            event_type=event_type,
            event_id=event.get("id"),
            user_id=str(result.user_id),
        )
    return result
