"""User entity - account with subscription entitlement state."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class PlanStatus(str, Enum):
    """Subscription status mirrored from the billing provider."""

    FREE = "free"
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


class User(SQLModel, table=True):
    """User represents an account and its monthly usage counters."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    display_name: Optional[str] = Field(default=None, max_length=255)

    # Entitlement state
    subscription_plan_id: Optional[UUID] = Field(default=None, foreign_key="subscription_plans.id")
    plan_status: PlanStatus = Field(default=PlanStatus.FREE)
    plan_start_date: Optional[datetime] = Field(default=None)
    plan_end_date: Optional[datetime] = Field(default=None)
    generations_used_this_month: int = Field(default=0, ge=0)
    image_generations_used_this_month: int = Field(default=0, ge=0)
    video_generations_used_this_month: int = Field(default=0, ge=0)

    # Billing references
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, max_length=255, index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
