"""SiteSetting entity - key-value store for runtime site configuration."""

from datetime import datetime
from typing import Any

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class SiteSetting(SQLModel, table=True):
    """SiteSetting stores admin-managed values such as billing secrets."""

    __tablename__ = "site_settings"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=255)
    value: Any = Field(default=None, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Validate key is alphanumeric + underscores only."""
        if not v.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")
        return v
