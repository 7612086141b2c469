"""Background workers for async processing tasks."""

from cadenza.workers.stale_submission_worker import run_stale_submission_worker

__all__ = ["run_stale_submission_worker"]
