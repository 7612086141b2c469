"""Generation job API endpoints.

- POST /api/generations/{kind} - Submit a job (text-to-music, audio-to-music,
  image, video-transcode)
- GET /api/generations - List the requester's jobs
- GET /api/generations/{job_id} - Job status; attaches a status poller for
  the owner while the job is in flight
- PATCH /api/generations/{job_id} - Edit visibility, title or album
- DELETE /api/generations/{job_id}/watch - Detach the status poller
- POST /api/generations/{job_id}/share - Create a shareable link to a track
"""

from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from cadenza.api.dependencies import (
    get_current_user_id,
    get_generation_service,
    get_optional_user_id,
    get_settings,
    get_uow_factory,
)
from cadenza.api.errors import to_http_exception
from cadenza.api.schemas import GenerationDTO, ShareLinkResponse
from cadenza.core.config import Settings
from cadenza.models.generation_job import InvalidTransition, JobKind, JobStatus, Visibility
from cadenza.models.shareable_link import SharedResource
from cadenza.services.exceptions import ServiceError
from cadenza.services.generation import GenerationService
from cadenza.services.sharing import create_share_link

logger = structlog.get_logger()
router = APIRouter(prefix="/api/generations", tags=["generations"])


# Request/Response Models


class SubmissionOptions(BaseModel):
    visibility: Visibility = Field(default=Visibility.PUBLIC)
    title: str | None = Field(default=None, max_length=255)


class TextToMusicRequest(SubmissionOptions):
    tags: str = Field(..., min_length=1, max_length=500, description="Comma-separated style tags")
    lyrics: str | None = Field(default=None, max_length=5000)
    duration: float | None = Field(default=None, ge=5, le=240, description="Seconds")


class AudioToMusicRequest(SubmissionOptions):
    input_audio_url: str = Field(..., min_length=1, description="Source audio to transform")
    tags: str = Field(..., min_length=1, max_length=500)
    lyrics: str | None = Field(default=None, max_length=5000)


class ImageRequest(SubmissionOptions):
    prompt: str = Field(..., min_length=1, max_length=1000)
    aspect_ratio: str | None = Field(default=None, max_length=10)


class VideoTranscodeRequest(SubmissionOptions):
    video_url: str = Field(
        ..., min_length=1, description="Absolute URL or path under PUBLIC_BASE_URL"
    )


class SubmitResponse(BaseModel):
    job_id: UUID
    status: JobStatus
    external_job_id: str | None = None


class UpdateGenerationRequest(BaseModel):
    visibility: Visibility | None = None
    title: str | None = Field(default=None, max_length=255)
    album_id: UUID | None = None
    remove_from_album: bool = False


class WatchResponse(BaseModel):
    detached: bool


# API Endpoints


async def _submit(
    service: GenerationService,
    user_id: UUID,
    kind: JobKind,
    request: SubmissionOptions,
) -> SubmitResponse:
    job_input: dict[str, Any] = request.model_dump(exclude={"visibility"}, exclude_none=True)
    try:
        job = await service.submit(
            user_id=user_id,
            kind=kind,
            job_input=job_input,
            visibility=request.visibility,
            title=request.title,
        )
    except ServiceError as e:
        raise to_http_exception(e)

    return SubmitResponse(job_id=job.id, status=job.status, external_job_id=job.external_job_id)


@router.post("/text-to-music", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_text_to_music(
    request: TextToMusicRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SubmitResponse:
    """Generate a track from style tags and optional lyrics.

    Responses:
        202: job submitted, poll GET /api/generations/{job_id}
        402: entitlement denied ({"reason": "QuotaExceeded" | "PlanExpired" | "PlanInactive"})
        502: provider failure; the job row exists in failed status
    """
    return await _submit(service, user_id, JobKind.TEXT_TO_MUSIC, request)


@router.post("/audio-to-music", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_audio_to_music(
    request: AudioToMusicRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SubmitResponse:
    return await _submit(service, user_id, JobKind.AUDIO_TO_MUSIC, request)


@router.post("/image", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_image(
    request: ImageRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SubmitResponse:
    return await _submit(service, user_id, JobKind.IMAGE, request)


@router.post(
    "/video-transcode", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED
)
async def submit_video_transcode(
    request: VideoTranscodeRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> SubmitResponse:
    return await _submit(service, user_id, JobKind.VIDEO_TRANSCODE, request)


@router.get("", response_model=list[GenerationDTO])
async def list_my_generations(
    visibility: Visibility | None = Query(default=None),
    kind: JobKind | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> list[GenerationDTO]:
    """The requester's own jobs, newest first, in every status."""
    async with await uow_factory() as uow:
        jobs = await uow.generation_jobs.list_by_owner(
            user_id, visibility=visibility, kind=kind, limit=limit, offset=offset
        )
    return [GenerationDTO.from_job(job, user_id) for job in jobs]


@router.get("/{job_id}", response_model=GenerationDTO)
async def get_generation(
    job_id: UUID,
    share_token: str | None = Query(default=None),
    requester_id: UUID | None = Depends(get_optional_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationDTO:
    """Current job state.

    Public jobs are readable by anyone; private jobs by the owner or with a
    share_token for the track or its album.
    """
    try:
        job = await service.get_status(job_id, requester_id, share_token)
    except ServiceError as e:
        raise to_http_exception(e)
    return GenerationDTO.from_job(job, requester_id)


@router.patch("/{job_id}", response_model=GenerationDTO)
async def update_generation(
    job_id: UUID,
    request: UpdateGenerationRequest,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> GenerationDTO:
    """Edit a completed job. 409 while the job is still in flight or failed."""
    try:
        job = await service.update_metadata(
            job_id,
            user_id,
            visibility=request.visibility,
            title=request.title,
            album_id=request.album_id,
            clear_album=request.remove_from_album,
        )
    except (ServiceError, InvalidTransition) as e:
        raise to_http_exception(e)
    return GenerationDTO.from_job(job, user_id)


@router.delete("/{job_id}/watch", response_model=WatchResponse)
async def stop_watching_generation(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> WatchResponse:
    """Stop status polling for a job the owner navigated away from.

    The external job keeps running; reading the job again resumes polling.
    """
    try:
        detached = await service.stop_watching(job_id, user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return WatchResponse(detached=detached)


@router.post(
    "/{job_id}/share", response_model=ShareLinkResponse, status_code=status.HTTP_201_CREATED
)
async def share_generation(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> ShareLinkResponse:
    try:
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is not None and job.status != JobStatus.COMPLETED:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Only completed generations can be shared",
                )
            link = await create_share_link(
                uow, user_id, SharedResource.TRACK, job_id, settings.share_link_ttl_days
            )
    except ServiceError as e:
        raise to_http_exception(e)

    return ShareLinkResponse(
        token=link.token,
        url=f"{settings.public_base_url.rstrip('/')}/api/shared/{link.token}",
        resource_type=link.resource_type.value,
        resource_id=link.resource_id,
        expires_at=link.expires_at,
    )
