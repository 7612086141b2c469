"""Entitlement gate: plan checks and atomic monthly quota reservation."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog

from cadenza.core.config import Settings
from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import JobKind
from cadenza.models.user import PlanStatus, User
from cadenza.services.exceptions import DenialReason, NotFoundError
from cadenza.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QuotaFields:
    counter: str  # User column holding monthly usage
    plan_limit: str  # SubscriptionPlan column holding the monthly maximum
    free_limit: str  # Settings attribute for users without a paid plan


MUSIC_QUOTA = QuotaFields(
    "generations_used_this_month", "max_generations", "free_max_generations"
)
IMAGE_QUOTA = QuotaFields(
    "image_generations_used_this_month", "max_image_generations", "free_max_image_generations"
)
VIDEO_QUOTA = QuotaFields(
    "video_generations_used_this_month", "max_video_generations", "free_max_video_generations"
)


def quota_fields_for(kind: JobKind) -> QuotaFields:
    """Both music kinds draw from the same monthly allowance."""
    if kind in (JobKind.TEXT_TO_MUSIC, JobKind.AUDIO_TO_MUSIC):
        return MUSIC_QUOTA
    if kind == JobKind.IMAGE:
        return IMAGE_QUOTA
    if kind == JobKind.VIDEO_TRANSCODE:
        return VIDEO_QUOTA
    raise ValueError(f"Unhandled job kind: {kind}")


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: DenialReason | None = None
    message: str | None = None

    @classmethod
    def allow(cls) -> "EntitlementDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, message: str) -> "EntitlementDecision":
        return cls(allowed=False, reason=reason, message=message)


class EntitlementGate:
    """Checks a user's plan and reserves one unit of monthly quota per submission.

    Reservation is a single conditional UPDATE, so concurrent submissions from
    the same user can never push a counter past the plan maximum.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def _resolve_limit(
        self, uow: UnitOfWork, user: User, fields: QuotaFields
    ) -> tuple[int | None, EntitlementDecision]:
        if user.plan_status == PlanStatus.INACTIVE:
            return None, EntitlementDecision.deny(
                DenialReason.PLAN_INACTIVE, "Your subscription is not active"
            )

        if user.subscription_plan_id is None or user.plan_status == PlanStatus.FREE:
            return getattr(self.settings, fields.free_limit), EntitlementDecision.allow()

        plan = await uow.plans.get_by_id(user.subscription_plan_id)
        if plan is None or not plan.is_active:
            return None, EntitlementDecision.deny(
                DenialReason.PLAN_INACTIVE, "Your subscription plan is no longer available"
            )

        if user.plan_end_date is not None and user.plan_end_date < utcnow():
            return None, EntitlementDecision.deny(
                DenialReason.PLAN_EXPIRED, "Your subscription period has ended"
            )

        return getattr(plan, fields.plan_limit), EntitlementDecision.allow()

    async def check_and_reserve(
        self, uow: UnitOfWork, user_id: UUID, kind: JobKind
    ) -> EntitlementDecision:
        """Allow the submission and increment the kind's counter, or deny it.

        Nothing is written when the decision is a denial.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await uow.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        fields = quota_fields_for(kind)
        limit, decision = await self._resolve_limit(uow, user, fields)
        if not decision.allowed or limit is None:
            logger.info(
                "entitlement.denied",
                user_id=str(user_id),
                kind=kind.value,
                reason=decision.reason.value if decision.reason else None,
            )
            return decision

        reserved = await uow.users.increment_usage_if_below(user_id, fields.counter, limit)
        if not reserved:
            logger.info(
                "entitlement.denied",
                user_id=str(user_id),
                kind=kind.value,
                reason=DenialReason.QUOTA_EXCEEDED.value,
                limit=limit,
            )
            return EntitlementDecision.deny(
                DenialReason.QUOTA_EXCEEDED,
                f"Monthly limit of {limit} generations reached for your plan",
            )

        logger.info("entitlement.reserved", user_id=str(user_id), kind=kind.value)
        return EntitlementDecision.allow()

    async def release(self, uow: UnitOfWork, user_id: UUID, kind: JobKind) -> None:
        """Compensating action: give back a reservation whose job never ran."""
        released = await uow.users.decrement_usage(user_id, quota_fields_for(kind).counter)
        logger.info(
            "entitlement.released", user_id=str(user_id), kind=kind.value, released=released
        )

    async def usage(self, uow: UnitOfWork, user_id: UUID) -> dict[str, Any]:
        """Current counters and limits per quota bucket.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await uow.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        buckets: dict[str, Any] = {}
        buckets_by_name = (("music", MUSIC_QUOTA), ("image", IMAGE_QUOTA), ("video", VIDEO_QUOTA))
        for name, fields in buckets_by_name:
            limit, decision = await self._resolve_limit(uow, user, fields)
            buckets[name] = {
                "used": getattr(user, fields.counter),
                "limit": limit,
                "denied_reason": decision.reason.value if decision.reason else None,
            }
        return {
            "plan_status": user.plan_status.value,
            "plan_end_date": user.plan_end_date,
            **buckets,
        }
