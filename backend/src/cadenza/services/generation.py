"""Generation submission and status service.

Submission runs in three steps:

1. One transaction reserves quota through the entitlement gate and creates
   the pending job row. A denial raises EntitlementDenied before anything is
   written or any provider is called; a failure creating the row rolls the
   reservation back with it.
2. The provider call happens outside any transaction.
3. On success the external job id is stored and a polling loop is attached.
   On failure the job is marked failed with a short message and the
   reservation is released in the same transaction. If the stale-submission
   sweeper failed the row while the provider call was in flight, its stored
   failure and refund stand and the submission is reported as failed.
"""

from typing import Any, Callable, Mapping
from uuid import UUID

import structlog

from cadenza.models.generation_job import (
    GenerationJob,
    InvalidTransition,
    JobKind,
    JobStatus,
    Visibility,
)
from cadenza.services.entitlements import EntitlementGate
from cadenza.services.exceptions import (
    ConflictError,
    EntitlementDenied,
    ForbiddenError,
    NotFoundError,
    ProviderQuotaExceeded,
    ProviderRejected,
    ProviderUnavailable,
    ServiceError,
    SubmissionExpired,
    SubmissionFailed,
)
from cadenza.services.poller import JobPoller
from cadenza.services.providers.base import JobProvider, ProviderObservation
from cadenza.services.sharing import ensure_job_readable

logger = structlog.get_logger(__name__)


def submission_error_message(error: ServiceError) -> str:
    """Short user-facing message stored on a job whose submission failed."""
    if isinstance(error, ProviderUnavailable):
        return "The generation service is temporarily unavailable. Please try again."
    if isinstance(error, ProviderQuotaExceeded):
        return "The generation service is out of credits. Please try again later."
    if isinstance(error, ProviderRejected):
        return f"The request was rejected: {error}"[:1000]
    return "Generation could not be submitted"


class GenerationService:
    def __init__(
        self,
        uow_factory: Callable[[], Any],
        providers: Mapping[JobKind, JobProvider],
        gate: EntitlementGate,
        poller: JobPoller,
    ):
        self.uow_factory = uow_factory
        self.providers = providers
        self.gate = gate
        self.poller = poller

    async def submit(
        self,
        user_id: UUID,
        kind: JobKind,
        job_input: dict[str, Any],
        visibility: Visibility = Visibility.PUBLIC,
        title: str | None = None,
    ) -> GenerationJob:
        """Gate, persist and submit one generation job.

        Returns:
            The job in submitted status, with a polling loop attached

        Raises:
            NotFoundError: If the user does not exist
            EntitlementDenied: If the user's plan does not allow the submission
            SubmissionFailed: If the provider refused or could not be reached
        """
        provider = self.providers[kind]

        async with await self.uow_factory() as uow:
            decision = await self.gate.check_and_reserve(uow, user_id, kind)
            if not decision.allowed:
                raise EntitlementDenied(decision.reason, decision.message or "Not allowed")
            job = await uow.generation_jobs.create(
                user_id=user_id,
                kind=kind,
                input_payload=job_input,
                visibility=visibility,
                title=title,
            )

        logger.info(
            "generation.created", job_id=str(job.id), kind=kind.value, provider=provider.name
        )

        try:
            external_job_id = await provider.submit(kind, job_input)
        except ServiceError as e:
            await self._fail_submission(job, e)
            raise SubmissionFailed(job.id, submission_error_message(e), e) from e

        try:
            async with await self.uow_factory() as uow:
                job = await uow.generation_jobs.record_submitted(job.id, external_job_id)
        except InvalidTransition as e:
            raise await self._submission_expired(job, external_job_id) from e

        logger.info(
            "generation.submitted",
            job_id=str(job.id),
            kind=kind.value,
            external_job_id=external_job_id,
        )
        self.poller.watch(job.id, job.kind, external_job_id, started_at=job.created_at)
        return job

    async def _fail_submission(self, job: GenerationJob, error: ServiceError) -> None:
        message = submission_error_message(error)
        logger.warning(
            "generation.submission_failed",
            job_id=str(job.id),
            kind=job.kind.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            async with await self.uow_factory() as uow:
                await uow.generation_jobs.record_status(
                    job.id, ProviderObservation.failed(message)
                )
                await self.gate.release(uow, job.user_id, job.kind)
        except InvalidTransition:
            # The stale-submission sweeper failed the row and released its quota first
            logger.info("generation.submission_already_failed", job_id=str(job.id))

    async def _submission_expired(
        self, job: GenerationJob, external_job_id: str
    ) -> SubmissionFailed:
        """The sweeper failed the row mid-call; its stored failure and refund stand."""
        async with await self.uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)
        message = (stored.error_message if stored else None) or "Generation could not be submitted"
        logger.warning(
            "generation.submission_expired",
            job_id=str(job.id),
            kind=job.kind.value,
            external_job_id=external_job_id,
        )
        return SubmissionFailed(job.id, message, SubmissionExpired(message))

    async def get_status(
        self, job_id: UUID, requester_id: UUID | None = None, share_token: str | None = None
    ) -> GenerationJob:
        """Read a job; an owner viewing an in-flight job gets a polling loop attached.

        Raises:
            NotFoundError: If the job does not exist
            ForbiddenError: If the job is private and not readable by the requester
        """
        async with await self.uow_factory() as uow:
            job = await ensure_job_readable(uow, job_id, requester_id, share_token)

        if (
            job.user_id == requester_id
            and job.external_job_id
            and job.status in (JobStatus.SUBMITTED, JobStatus.PROCESSING)
        ):
            self.poller.watch(job.id, job.kind, job.external_job_id, started_at=job.created_at)
        return job

    async def stop_watching(self, job_id: UUID, requester_id: UUID) -> bool:
        """Detach the polling loop of an owned job. The external job keeps running.

        Raises:
            NotFoundError: If the job does not exist
            ForbiddenError: If the requester does not own the job
        """
        async with await self.uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
        if job is None:
            raise NotFoundError(f"Generation {job_id} not found")
        if job.user_id != requester_id:
            raise ForbiddenError("Only the owner can stop watching this generation")
        return self.poller.cancel(job_id)

    async def update_metadata(
        self,
        job_id: UUID,
        requester_id: UUID,
        visibility: Visibility | None = None,
        title: str | None = None,
        album_id: UUID | None = None,
        clear_album: bool = False,
    ) -> GenerationJob:
        """Change visibility, title or album of a completed job.

        Raises:
            NotFoundError: If the job or the target album does not exist
            ForbiddenError: If the requester does not own the job or the album
            ConflictError: If the job has not completed
        """
        async with await self.uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is None:
                raise NotFoundError(f"Generation {job_id} not found")
            if job.user_id != requester_id:
                raise ForbiddenError("Only the owner can edit this generation")
            if job.status != JobStatus.COMPLETED:
                raise ConflictError(
                    f"Generation is {job.status.value}; only completed generations can be edited"
                )

            if album_id is not None and not clear_album:
                album = await uow.albums.get_by_id(album_id)
                if album is None:
                    raise NotFoundError(f"Album {album_id} not found")
                if album.user_id != requester_id:
                    raise ForbiddenError("Tracks can only be added to your own albums")

            job = await uow.generation_jobs.update_metadata(
                job,
                visibility=visibility,
                title=title,
                album_id=album_id,
                clear_album=clear_album,
            )

        logger.info("generation.metadata_updated", job_id=str(job_id))
        return job
