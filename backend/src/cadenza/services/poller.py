"""Status poller: one cancellable polling loop per in-flight generation job.

The poller owns an explicit map of job id to asyncio.Task. A loop is
detached when it records a terminal state, when the viewer stops watching
(cancel), or on application shutdown. Detaching never touches the external
job; a later watch() resumes from whatever state the store holds.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Mapping
from uuid import UUID

import structlog

from cadenza.core.config import Settings
from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import GenerationJob, InvalidTransition, JobKind
from cadenza.services.exceptions import (
    NotFoundError,
    PermanentError,
    PollingTimedOut,
    ProviderUnavailable,
)
from cadenza.services.providers.base import JobProvider, ProviderObservation

logger = structlog.get_logger(__name__)

DEADLINE_REASON = "no final status before the polling deadline"


class JobPoller:
    def __init__(
        self,
        uow_factory: Callable[[], Any],
        providers: Mapping[JobKind, JobProvider],
        interval_seconds: float = 2.0,
        max_unavailable: int = 30,
        timeout_seconds: float = 1800.0,
    ):
        self.uow_factory = uow_factory
        self.providers = providers
        self.interval_seconds = interval_seconds
        self.max_unavailable = max_unavailable
        self.timeout_seconds = timeout_seconds
        self._tasks: dict[UUID, asyncio.Task] = {}

    @classmethod
    def from_settings(
        cls,
        uow_factory: Callable[[], Any],
        providers: Mapping[JobKind, JobProvider],
        settings: Settings,
    ) -> "JobPoller":
        return cls(
            uow_factory,
            providers,
            interval_seconds=settings.poll_interval_seconds,
            max_unavailable=settings.poll_max_unavailable,
            timeout_seconds=settings.poll_timeout_seconds,
        )

    def is_watching(self, job_id: UUID) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    @property
    def active_job_ids(self) -> list[UUID]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    def watch(
        self,
        job_id: UUID,
        kind: JobKind,
        external_job_id: str,
        started_at: datetime | None = None,
    ) -> asyncio.Task:
        """Attach a polling loop to the job, or return the loop already attached.

        The polling deadline counts from started_at (the job's creation time)
        when given, so re-attaching does not extend it.
        """
        existing = self._tasks.get(job_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(
            self._poll(job_id, kind, external_job_id, started_at), name=f"poll-{job_id}"
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.info("poller.attached", job_id=str(job_id), kind=kind.value)
        return task

    def cancel(self, job_id: UUID) -> bool:
        """Detach the job's loop. Returns False when nothing was attached."""
        task = self._tasks.pop(job_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("poller.detached", job_id=str(job_id))
        return True

    async def wait_for(self, job_id: UUID) -> GenerationJob | None:
        """Wait until the job's loop stops and return the last stored job."""
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return await task

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("poller.shutdown", cancelled=len(tasks))

    def _on_done(self, job_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "poller.loop_crashed",
                job_id=str(job_id),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=exc,
            )

    async def _poll(
        self,
        job_id: UUID,
        kind: JobKind,
        external_job_id: str,
        started_at: datetime | None = None,
    ) -> GenerationJob | None:
        provider = self.providers[kind]
        loop = asyncio.get_running_loop()
        elapsed = (utcnow() - started_at).total_seconds() if started_at else 0.0
        deadline = loop.time() + self.timeout_seconds - max(elapsed, 0.0)
        consecutive_unavailable = 0

        while True:
            await asyncio.sleep(self.interval_seconds)

            try:
                observation = await provider.get_status(external_job_id)
            except PermanentError as e:
                observation = ProviderObservation.failed(str(e))
            except Exception as e:
                # ProviderUnavailable and anything unclassified share the retry ceiling
                consecutive_unavailable += 1
                if isinstance(e, ProviderUnavailable):
                    logger.warning(
                        "poller.provider_unavailable",
                        job_id=str(job_id),
                        provider=provider.name,
                        consecutive=consecutive_unavailable,
                        error=str(e),
                    )
                else:
                    logger.error(
                        "poller.provider_error",
                        job_id=str(job_id),
                        provider=provider.name,
                        consecutive=consecutive_unavailable,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=e,
                    )
                if consecutive_unavailable >= self.max_unavailable:
                    return await self._give_up(
                        job_id,
                        f"{provider.name} was unreachable for {consecutive_unavailable} "
                        "consecutive status checks",
                    )
                if loop.time() >= deadline:
                    return await self._give_up(job_id, DEADLINE_REASON)
                continue

            consecutive_unavailable = 0
            job = await self._record(job_id, observation)
            if job is None or job.status.is_terminal:
                return job

            if loop.time() >= deadline:
                return await self._give_up(job_id, DEADLINE_REASON)

    async def _record(
        self, job_id: UUID, observation: ProviderObservation
    ) -> GenerationJob | None:
        try:
            async with await self.uow_factory() as uow:
                job = await uow.generation_jobs.record_status(job_id, observation)
        except InvalidTransition:
            # Another loop or the sweeper already stored the final state
            logger.info("poller.already_terminal", job_id=str(job_id))
            return None
        except NotFoundError:
            logger.warning("poller.job_missing", job_id=str(job_id))
            return None

        logger.info(
            "poller.tick",
            job_id=str(job_id),
            observed=observation.state.value,
            status=job.status.value,
        )
        if job.status.is_terminal:
            logger.info(
                "generation.finished",
                job_id=str(job_id),
                status=job.status.value,
                error=job.error_message,
            )
        return job

    async def _give_up(self, job_id: UUID, reason: str) -> GenerationJob | None:
        error = PollingTimedOut(f"Status polling timed out: {reason}")
        logger.error("poller.timed_out", job_id=str(job_id), reason=reason)
        return await self._record(job_id, ProviderObservation.failed(str(error)))
