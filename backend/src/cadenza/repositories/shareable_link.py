"""ShareableLink repository for Cadenza backend."""

import secrets
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.core.timezone import utcnow
from cadenza.models.shareable_link import ShareableLink, SharedResource


class ShareableLinkRepository:
    """Repository for share tokens granting read access to albums and tracks."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        resource_type: SharedResource,
        resource_id: UUID,
        user_id: UUID,
        expires_at: datetime | None = None,
    ) -> ShareableLink:
        """Create a link with a fresh URL-safe token (32 chars)."""
        link = ShareableLink(
            token=secrets.token_urlsafe(24),
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            expires_at=expires_at,
        )
        self.session.add(link)
        await self.session.flush()
        return link

    async def get_by_token(self, token: str) -> ShareableLink | None:
        result = await self.session.execute(
            select(ShareableLink).where(ShareableLink.token == token)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_valid(self, token: str) -> ShareableLink | None:
        """Retrieve link if it exists, is not revoked and has not expired."""
        link = await self.get_by_token(token)
        if link is None or not link.is_valid(utcnow()):
            return None
        return link

    async def increment_view_count(self, link: ShareableLink) -> None:
        """Atomic view counter increment (UPDATE ... SET view_count = view_count + 1)."""
        await self.session.execute(
            update(ShareableLink)
            .where(ShareableLink.id == link.id)  # type: ignore[arg-type]
            .values(view_count=ShareableLink.view_count + 1)
            .execution_options(synchronize_session="evaluate")
        )
        await self.session.flush()

    async def revoke(self, link: ShareableLink) -> ShareableLink:
        link.revoked = True
        self.session.add(link)
        await self.session.flush()
        return link
