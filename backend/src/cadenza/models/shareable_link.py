"""ShareableLink entity - token granting read access to a private album or track."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class SharedResource(str, Enum):
    ALBUM = "album"
    TRACK = "track"


class ShareableLink(SQLModel, table=True):
    """ShareableLink maps an unguessable token to one album or track."""

    __tablename__ = "shareable_links"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    token: str = Field(max_length=64, unique=True, index=True)
    resource_type: SharedResource
    resource_id: UUID = Field(index=True)
    user_id: UUID = Field(foreign_key="users.id")
    expires_at: Optional[datetime] = Field(default=None)
    revoked: bool = Field(default=False)
    view_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    def is_valid(self, now: datetime) -> bool:
        if self.revoked:
            return False
        return self.expires_at is None or self.expires_at > now
