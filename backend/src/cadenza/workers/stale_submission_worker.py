"""Stale submission worker.

A job stays pending only between its creation and the provider call. If the
process dies in between, the row is left pending with its quota reserved and
no external job to poll. This worker fails such rows once they are older than
SUBMISSION_TIMEOUT_SECONDS and gives the reservation back.
"""

import asyncio
from datetime import timedelta
from typing import Callable

import structlog

from cadenza.core.config import Settings
from cadenza.core.timezone import utcnow
from cadenza.services.entitlements import EntitlementGate
from cadenza.services.providers.base import ProviderObservation
from cadenza.uow import UnitOfWork

logger = structlog.get_logger(__name__)

STALE_SUBMISSION_MESSAGE = "Submission did not complete; no charge was recorded"


async def sweep_stale_submissions(session_factory: Callable, settings: Settings) -> int:
    """Fail one batch of stale pending jobs and release their reservations.

    Rows are locked with FOR UPDATE SKIP LOCKED, so concurrent sweepers never
    handle the same job twice.

    Returns:
        Number of jobs failed
    """
    cutoff = utcnow() - timedelta(seconds=settings.submission_timeout_seconds)
    gate = EntitlementGate(settings)

    async with UnitOfWork(session_factory()) as uow:
        jobs = await uow.generation_jobs.list_stale_pending(
            older_than=cutoff, limit=settings.worker_batch_size
        )
        for job in jobs:
            await uow.generation_jobs.record_status(
                job.id, ProviderObservation.failed(STALE_SUBMISSION_MESSAGE)
            )
            await gate.release(uow, job.user_id, job.kind)
            logger.warning(
                "generation.stale_submission_failed",
                job_id=str(job.id),
                kind=job.kind.value,
                created_at=job.created_at.isoformat(),
            )

    return len(jobs)


async def run_stale_submission_worker(
    session_factory: Callable,
    settings: Settings,
) -> None:
    """Main worker loop: sweep every SWEEP_INTERVAL_SECONDS until cancelled."""
    logger.info(
        "worker.started",
        worker="stale_submission",
        sweep_interval=settings.sweep_interval_seconds,
        submission_timeout=settings.submission_timeout_seconds,
    )

    try:
        while True:
            try:
                failed = await sweep_stale_submissions(session_factory, settings)
                if failed:
                    logger.info("worker.sweep_completed", failed_jobs=failed)

                await asyncio.sleep(settings.sweep_interval_seconds)

            except asyncio.CancelledError:
                # Propagate cancellation for graceful shutdown
                raise

            except Exception as e:
                # Unexpected error in sweep loop - log and continue with backoff
                logger.error(
                    "worker.error",
                    worker="stale_submission",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="stale_submission")
        raise
