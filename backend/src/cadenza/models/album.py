"""Album entity - owner-curated collection of generated tracks."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import Visibility


class Album(SQLModel, table=True):
    __tablename__ = "albums"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=255)
    cover_url: Optional[str] = Field(default=None)
    visibility: Visibility = Field(default=Visibility.PRIVATE)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
