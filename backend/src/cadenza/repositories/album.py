"""Album repository for Cadenza backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.models.album import Album


class AlbumRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, album: Album) -> Album:
        self.session.add(album)
        await self.session.flush()
        return album

    async def get_by_id(self, album_id: UUID) -> Album | None:
        result = await self.session.execute(select(Album).where(Album.id == album_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def list_by_owner(self, user_id: UUID) -> list[Album]:
        result = await self.session.execute(
            select(Album)
            .where(Album.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Album.created_at.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
