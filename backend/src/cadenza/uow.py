"""Unit of Work pattern for Cadenza backend.

Provides transaction management with automatic commit/rollback and access to all repositories.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadenza.repositories.album import AlbumRepository
from cadenza.repositories.generation_job import GenerationJobRepository
from cadenza.repositories.plan import SubscriptionPlanRepository
from cadenza.repositories.playlist import PlaylistRepository
from cadenza.repositories.shareable_link import ShareableLinkRepository
from cadenza.repositories.site_setting import SiteSettingRepository
from cadenza.repositories.user import UserRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages database transactions and provides access to all repositories.
    Use as async context manager for automatic commit/rollback.

    Example:
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.create(user_id, JobKind.IMAGE, {"prompt": "..."})
            # Automatically commits on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

        self.users = UserRepository(session)
        self.plans = SubscriptionPlanRepository(session)
        self.generation_jobs = GenerationJobRepository(session)
        self.albums = AlbumRepository(session)
        self.playlists = PlaylistRepository(session)
        self.shareable_links = ShareableLinkRepository(session)
        self.site_settings = SiteSettingRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit on clean exit, roll back and re-raise on exception."""
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        # Return False to re-raise the exception (if any)
        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Create a factory function that produces UnitOfWork instances.

    Example:
        session_factory = setup_db_session(db_url, pool_size=50)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            await uow.users.add(user)
    """

    async def _create_uow():
        """Create a new UnitOfWork instance with a new session."""
        session = session_factory()
        return UnitOfWork(session)

    return _create_uow
