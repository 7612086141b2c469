"""SubscriptionPlan entity - monthly generation limits per job kind."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class SubscriptionPlan(SQLModel, table=True):
    """SubscriptionPlan defines monthly quotas and billing price references."""

    __tablename__ = "subscription_plans"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    monthly_price_id: Optional[str] = Field(default=None, max_length=255)
    yearly_price_id: Optional[str] = Field(default=None, max_length=255)
    max_generations: int = Field(default=5, ge=0)  # text-to-music + audio-to-music
    max_image_generations: int = Field(default=5, ge=0)
    max_video_generations: int = Field(default=1, ge=0)
    is_active: bool = Field(default=True)
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
