"""Provider-agnostic contract for external generation and transcoding jobs.

Every provider adapter normalizes its own response shape into a
ProviderObservation before returning, so the store and the poller never see
provider field names.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from cadenza.models.generation_job import JobKind


class ObservedState(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class JobResult:
    """Normalized result references of a completed job."""

    audio_url: str | None = None
    image_url: str | None = None
    playback_id: str | None = None
    seed: int | None = None


@dataclass(frozen=True)
class ProviderObservation:
    state: ObservedState
    result: JobResult | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (ObservedState.COMPLETED, ObservedState.FAILED)

    @classmethod
    def submitted(cls) -> "ProviderObservation":
        return cls(state=ObservedState.SUBMITTED)

    @classmethod
    def processing(cls) -> "ProviderObservation":
        return cls(state=ObservedState.PROCESSING)

    @classmethod
    def completed(cls, result: JobResult) -> "ProviderObservation":
        return cls(state=ObservedState.COMPLETED, result=result)

    @classmethod
    def failed(cls, error: str) -> "ProviderObservation":
        return cls(state=ObservedState.FAILED, error=error)


class JobProvider(Protocol):
    """External Job Client contract.

    submit() raises ProviderUnavailable, ProviderRejected or ProviderQuotaExceeded.
    get_status() raises ProviderUnavailable only; provider-reported terminal
    failures come back as a failed observation.
    """

    name: str

    async def submit(self, kind: JobKind, job_input: dict[str, Any]) -> str: ...

    async def get_status(self, external_job_id: str) -> ProviderObservation: ...
