"""Playlist repository for Cadenza backend."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import GenerationJob
from cadenza.models.playlist import Playlist, PlaylistTrack


class PlaylistRepository:
    """Repository for playlists and their ordered track entries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, playlist: Playlist) -> Playlist:
        self.session.add(playlist)
        await self.session.flush()
        return playlist

    async def get_by_id(self, playlist_id: UUID) -> Playlist | None:
        result = await self.session.execute(
            select(Playlist).where(Playlist.id == playlist_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def has_track(self, playlist_id: UUID, track_id: UUID) -> bool:
        result = await self.session.execute(
            select(PlaylistTrack.id).where(  # type: ignore[call-overload]
                PlaylistTrack.playlist_id == playlist_id,
                PlaylistTrack.track_id == track_id,
            )
        )
        return result.first() is not None

    async def add_track(self, playlist: Playlist, track_id: UUID) -> PlaylistTrack:
        """Append track at the end of the playlist."""
        result = await self.session.execute(
            select(func.max(PlaylistTrack.position)).where(
                PlaylistTrack.playlist_id == playlist.id  # type: ignore[arg-type]
            )
        )
        last_position = result.scalar_one_or_none()
        entry = PlaylistTrack(
            playlist_id=playlist.id,
            track_id=track_id,
            position=0 if last_position is None else last_position + 1,
        )
        self.session.add(entry)
        playlist.updated_at = utcnow()
        self.session.add(playlist)
        await self.session.flush()
        return entry

    async def list_tracks(self, playlist_id: UUID) -> list[GenerationJob]:
        """Tracks of a playlist in position order."""
        result = await self.session.execute(
            select(GenerationJob)
            .join(PlaylistTrack, PlaylistTrack.track_id == GenerationJob.id)  # type: ignore[arg-type]
            .where(PlaylistTrack.playlist_id == playlist_id)  # type: ignore[arg-type]
            .order_by(PlaylistTrack.position.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
