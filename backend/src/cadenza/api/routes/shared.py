"""Shareable link endpoints.

- GET /api/shared/{token} - Resolve a link to its album or track (counts the view)
- DELETE /api/shared/{token} - Revoke a link (creator only)
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cadenza.api.dependencies import get_current_user_id, get_uow_factory
from cadenza.api.errors import to_http_exception
from cadenza.api.routes.albums import AlbumDTO
from cadenza.api.schemas import GenerationDTO
from cadenza.services.exceptions import ServiceError
from cadenza.services.sharing import resolve_share_link, revoke_share_link

router = APIRouter(prefix="/api/shared", tags=["shared"])


class SharedContentResponse(BaseModel):
    resource_type: str
    view_count: int
    album: AlbumDTO | None = None
    track: GenerationDTO | None = None


class RevokeResponse(BaseModel):
    revoked: bool


@router.get("/{token}", response_model=SharedContentResponse)
async def get_shared_content(
    token: str, uow_factory=Depends(get_uow_factory)
) -> SharedContentResponse:
    """404 for unknown, revoked or expired tokens."""
    try:
        async with await uow_factory() as uow:
            content = await resolve_share_link(uow, token)
    except ServiceError as e:
        raise to_http_exception(e)

    if content.album is not None:
        return SharedContentResponse(
            resource_type=content.link.resource_type.value,
            view_count=content.link.view_count,
            album=AlbumDTO.from_album(content.album, content.tracks),
        )
    return SharedContentResponse(
        resource_type=content.link.resource_type.value,
        view_count=content.link.view_count,
        track=GenerationDTO.from_job(content.tracks[0]),
    )


@router.delete("/{token}", response_model=RevokeResponse)
async def revoke_shared_link(
    token: str,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> RevokeResponse:
    try:
        async with await uow_factory() as uow:
            link = await revoke_share_link(uow, token, user_id)
    except ServiceError as e:
        raise to_http_exception(e)
    return RevokeResponse(revoked=link.revoked)
