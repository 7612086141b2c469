"""GenerationJob repository - the Job Record Store.

Every write goes through a row loaded FOR UPDATE and bumps updated_at.
Terminal jobs are write-once: status writes against them raise
InvalidTransition.
"""

from dataclasses import asdict
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import (
    GenerationJob,
    InvalidTransition,
    JobKind,
    JobStatus,
    Visibility,
)
from cadenza.services.exceptions import ForbiddenError, NotFoundError
from cadenza.services.providers.base import ObservedState, ProviderObservation


class GenerationJobRepository:
    """Repository for GenerationJob entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def create(
        self,
        user_id: UUID,
        kind: JobKind,
        input_payload: dict[str, Any],
        visibility: Visibility = Visibility.PUBLIC,
        title: str | None = None,
    ) -> GenerationJob:
        """Persist a new job in pending status.

        Returns:
            Persisted job with generated ID
        """
        job = GenerationJob(
            user_id=user_id,
            kind=kind,
            input_payload=input_payload,
            visibility=visibility,
            title=title,
            status=JobStatus.PENDING,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> GenerationJob | None:
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get(self, job_id: UUID, requester_id: UUID | None) -> GenerationJob:
        """Retrieve job as seen by a requester.

        Raises:
            NotFoundError: If no job has this ID
            ForbiddenError: If the job is private and requester is not the owner
        """
        job = await self.get_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Generation {job_id} not found")
        if job.visibility == Visibility.PRIVATE and job.user_id != requester_id:
            raise ForbiddenError("This generation is private")
        return job

    async def _get_for_write(self, job_id: UUID) -> GenerationJob:
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .with_for_update()
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise NotFoundError(f"Generation {job_id} not found")
        return job

    async def _save(self, job: GenerationJob) -> GenerationJob:
        job.updated_at = utcnow()
        self.session.add(job)
        await self.session.flush()
        return job

    async def record_submitted(self, job_id: UUID, external_job_id: str) -> GenerationJob:
        """Store the provider's job reference: pending → submitted.

        Raises:
            InvalidTransition: If job is not pending (duplicate submission)
        """
        job = await self._get_for_write(job_id)
        job.mark_submitted(external_job_id)
        return await self._save(job)

    async def record_status(self, job_id: UUID, observation: ProviderObservation) -> GenerationJob:
        """Apply a provider observation to the stored job.

        Observing the same or an earlier non-terminal state writes nothing,
        so repeated polls of a processing job leave updated_at unchanged.

        Raises:
            InvalidTransition: If the job is already completed or failed
        """
        job = await self._get_for_write(job_id)
        if job.status.is_terminal:
            raise InvalidTransition(
                f"Generation {job_id} is already {job.status.value}; terminal states are write-once"
            )

        state = observation.state
        if state == ObservedState.SUBMITTED:
            changed = False
        elif state == ObservedState.PROCESSING:
            changed = job.mark_processing()
        elif state == ObservedState.COMPLETED:
            if observation.result is None:
                raise ValueError("Completed observation requires a result")
            job.mark_completed(**asdict(observation.result))
            changed = True
        elif state == ObservedState.FAILED:
            job.mark_failed(observation.error or "Generation failed")
            changed = True
        else:
            raise ValueError(f"Unhandled observed state: {state}")

        if changed:
            await self._save(job)
        return job

    async def update_metadata(
        self,
        job: GenerationJob,
        visibility: Visibility | None = None,
        title: str | None = None,
        album_id: UUID | None = None,
        clear_album: bool = False,
    ) -> GenerationJob:
        """Update owner-editable fields (visibility, title, album)."""
        if visibility is not None:
            job.visibility = visibility
        if title is not None:
            job.title = title
        if clear_album:
            job.album_id = None
        elif album_id is not None:
            job.album_id = album_id
        return await self._save(job)

    async def list_by_owner(
        self,
        user_id: UUID,
        visibility: Visibility | None = None,
        kind: JobKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[GenerationJob]:
        """Retrieve the owner's jobs, newest first."""
        query = select(GenerationJob).where(GenerationJob.user_id == user_id)  # type: ignore[arg-type]
        if visibility is not None:
            query = query.where(GenerationJob.visibility == visibility)  # type: ignore[arg-type]
        if kind is not None:
            query = query.where(GenerationJob.kind == kind)  # type: ignore[arg-type]
        result = await self.session.execute(
            query.order_by(GenerationJob.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_public_by_owner(self, user_id: UUID, limit: int = 50) -> list[GenerationJob]:
        """Completed public jobs for a public profile page."""
        result = await self.session.execute(
            select(GenerationJob)
            .where(
                GenerationJob.user_id == user_id,  # type: ignore[arg-type]
                GenerationJob.visibility == Visibility.PUBLIC,  # type: ignore[arg-type]
                GenerationJob.status == JobStatus.COMPLETED,  # type: ignore[arg-type]
            )
            .order_by(GenerationJob.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_gallery(self, limit: int = 20) -> list[GenerationJob]:
        """Completed public jobs not hidden from the community gallery."""
        result = await self.session.execute(
            select(GenerationJob)
            .where(
                GenerationJob.visibility == Visibility.PUBLIC,  # type: ignore[arg-type]
                GenerationJob.status == JobStatus.COMPLETED,  # type: ignore[arg-type]
                GenerationJob.show_in_gallery.is_(True),  # type: ignore[attr-defined]
            )
            .order_by(GenerationJob.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_album(self, album_id: UUID) -> list[GenerationJob]:
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.album_id == album_id)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def list_stale_pending(
        self, older_than: datetime, limit: int = 50
    ) -> list[GenerationJob]:
        """Retrieve pending jobs whose submission never completed, with row locks.

        Uses FOR UPDATE SKIP LOCKED so concurrent sweepers never fail the same job.
        """
        result = await self.session.execute(
            select(GenerationJob)
            .where(
                GenerationJob.status == JobStatus.PENDING,  # type: ignore[arg-type]
                GenerationJob.created_at < older_than,  # type: ignore[arg-type]
            )
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def count_by_owner(self, user_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(GenerationJob)
            .where(GenerationJob.user_id == user_id)  # type: ignore[arg-type]
        )
        return result.scalar_one()
