"""SubscriptionPlan repository for Cadenza backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.models.plan import SubscriptionPlan


class SubscriptionPlanRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None:
        result = await self.session.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        self.session.add(plan)
        await self.session.flush()
        return plan

    async def list_active(self) -> list[SubscriptionPlan]:
        """Active plans in display order (pricing page)."""
        result = await self.session.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))  # type: ignore[attr-defined]
            .order_by(SubscriptionPlan.sort_order.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
