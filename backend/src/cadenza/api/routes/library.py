"""Public listings and the requester's usage.

- GET /api/gallery - Community gallery of completed public tracks
- GET /api/users/{user_id}/generations - Public profile tracks
- GET /api/me/usage - Monthly usage and limits per quota bucket
- GET /api/plans - Active subscription plans (pricing page)
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from cadenza.api.dependencies import get_current_user_id, get_settings, get_uow_factory
from cadenza.api.errors import to_http_exception
from cadenza.api.schemas import GenerationDTO
from cadenza.core.config import Settings
from cadenza.services.entitlements import EntitlementGate
from cadenza.services.exceptions import ServiceError

router = APIRouter(prefix="/api", tags=["library"])


class QuotaBucket(BaseModel):
    used: int
    limit: int | None = None
    denied_reason: str | None = None


class PlanDTO(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    monthly_price_id: str | None = None
    yearly_price_id: str | None = None
    max_generations: int
    max_image_generations: int
    max_video_generations: int


class UsageResponse(BaseModel):
    plan_status: str
    plan_end_date: datetime | None = None
    music: QuotaBucket
    image: QuotaBucket
    video: QuotaBucket


@router.get("/gallery", response_model=list[GenerationDTO])
async def get_gallery(
    limit: int = Query(default=20, ge=1, le=100),
    uow_factory=Depends(get_uow_factory),
) -> list[GenerationDTO]:
    async with await uow_factory() as uow:
        jobs = await uow.generation_jobs.list_gallery(limit=limit)
    return [GenerationDTO.from_job(job) for job in jobs]


@router.get("/users/{user_id}/generations", response_model=list[GenerationDTO])
async def get_user_public_generations(
    user_id: UUID,
    limit: int = Query(default=50, ge=1, le=100),
    uow_factory=Depends(get_uow_factory),
) -> list[GenerationDTO]:
    """Completed public tracks of one user. Private tracks never appear here."""
    async with await uow_factory() as uow:
        jobs = await uow.generation_jobs.list_public_by_owner(user_id, limit=limit)
    return [GenerationDTO.from_job(job) for job in jobs]


@router.get("/me/usage", response_model=UsageResponse)
async def get_my_usage(
    user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> UsageResponse:
    try:
        async with await uow_factory() as uow:
            usage = await EntitlementGate(settings).usage(uow, user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return UsageResponse(**usage)


@router.get("/plans", response_model=list[PlanDTO])
async def list_plans(uow_factory=Depends(get_uow_factory)) -> list[PlanDTO]:
    async with await uow_factory() as uow:
        plans = await uow.plans.list_active()
    return [PlanDTO.model_validate(plan, from_attributes=True) for plan in plans]
