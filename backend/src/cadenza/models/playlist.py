"""Playlist entities - ordered track lists that may reference other users' public tracks."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class Playlist(SQLModel, table=True):
    __tablename__ = "playlists"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    is_public: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PlaylistTrack(SQLModel, table=True):
    __tablename__ = "playlist_tracks"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("playlist_id", "track_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    playlist_id: UUID = Field(foreign_key="playlists.id", index=True)
    track_id: UUID = Field(foreign_key="generation_jobs.id")
    position: int = Field(default=0, ge=0)
    added_at: datetime = Field(default_factory=utcnow)
