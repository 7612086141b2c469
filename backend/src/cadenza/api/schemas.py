"""Response models shared by several routers."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from cadenza.models.generation_job import GenerationJob, JobKind, JobStatus, Visibility


class GenerationDTO(BaseModel):
    """Data Transfer Object for a generation job in API responses."""

    id: UUID
    user_id: UUID
    kind: JobKind
    status: JobStatus
    visibility: Visibility
    title: str | None = None
    album_id: UUID | None = None
    external_job_id: str | None = None
    audio_url: str | None = Field(default=None, description="Set only when completed")
    image_url: str | None = Field(default=None, description="Set only when completed")
    playback_id: str | None = Field(default=None, description="MUX playback id (video)")
    hls_url: str | None = None
    seed: int | None = None
    error_message: str | None = Field(default=None, description="Set only when failed")
    input_payload: dict[str, Any] | None = Field(
        default=None, description="Submitted input, returned to the owner only"
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: GenerationJob, requester_id: UUID | None = None) -> "GenerationDTO":
        return cls(
            id=job.id,
            user_id=job.user_id,
            kind=job.kind,
            status=job.status,
            visibility=job.visibility,
            title=job.title,
            album_id=job.album_id,
            external_job_id=job.external_job_id,
            audio_url=job.audio_url,
            image_url=job.image_url,
            playback_id=job.playback_id,
            hls_url=job.hls_url,
            seed=job.seed,
            error_message=job.error_message,
            input_payload=job.input_payload if job.user_id == requester_id else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class ShareLinkResponse(BaseModel):
    token: str
    url: str
    resource_type: str
    resource_id: UUID
    expires_at: datetime | None = None
