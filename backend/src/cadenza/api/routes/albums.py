"""Album API endpoints.

- POST /api/albums - Create an album
- GET /api/albums - The requester's albums, newest first
- GET /api/albums/{album_id} - Album with the tracks visible to the requester
- POST /api/albums/{album_id}/share - Create a shareable link to the album
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from cadenza.api.dependencies import (
    get_current_user_id,
    get_optional_user_id,
    get_settings,
    get_uow_factory,
)
from cadenza.api.errors import to_http_exception
from cadenza.api.schemas import GenerationDTO, ShareLinkResponse
from cadenza.core.config import Settings
from cadenza.models.album import Album
from cadenza.models.generation_job import Visibility
from cadenza.models.shareable_link import SharedResource
from cadenza.services.exceptions import ServiceError
from cadenza.services.sharing import create_share_link, ensure_album_readable

logger = structlog.get_logger()
router = APIRouter(prefix="/api/albums", tags=["albums"])


class CreateAlbumRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    cover_url: str | None = None
    visibility: Visibility = Field(default=Visibility.PRIVATE)


class AlbumDTO(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    cover_url: str | None = None
    visibility: Visibility
    created_at: datetime
    tracks: list[GenerationDTO] = Field(default_factory=list)

    @classmethod
    def from_album(
        cls, album: Album, tracks: list | None = None, requester_id: UUID | None = None
    ) -> "AlbumDTO":
        return cls(
            id=album.id,
            user_id=album.user_id,
            name=album.name,
            cover_url=album.cover_url,
            visibility=album.visibility,
            created_at=album.created_at,
            tracks=[GenerationDTO.from_job(t, requester_id) for t in tracks or []],
        )


@router.post("", response_model=AlbumDTO, status_code=status.HTTP_201_CREATED)
async def create_album(
    request: CreateAlbumRequest,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> AlbumDTO:
    async with await uow_factory() as uow:
        album = await uow.albums.add(
            Album(
                user_id=user_id,
                name=request.name,
                cover_url=request.cover_url,
                visibility=request.visibility,
            )
        )
    logger.info("album.created", album_id=str(album.id), user_id=str(user_id))
    return AlbumDTO.from_album(album)


@router.get("", response_model=list[AlbumDTO])
async def list_my_albums(
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> list[AlbumDTO]:
    """Album headers only; tracks are loaded by GET /api/albums/{album_id}."""
    async with await uow_factory() as uow:
        albums = await uow.albums.list_by_owner(user_id)
    return [AlbumDTO.from_album(album) for album in albums]


@router.get("/{album_id}", response_model=AlbumDTO)
async def get_album(
    album_id: UUID,
    share_token: str | None = Query(default=None),
    requester_id: UUID | None = Depends(get_optional_user_id),
    uow_factory=Depends(get_uow_factory),
) -> AlbumDTO:
    try:
        async with await uow_factory() as uow:
            album, tracks = await ensure_album_readable(uow, album_id, requester_id, share_token)
    except ServiceError as e:
        raise to_http_exception(e)
    return AlbumDTO.from_album(album, tracks, requester_id)


@router.post(
    "/{album_id}/share", response_model=ShareLinkResponse, status_code=status.HTTP_201_CREATED
)
async def share_album(
    album_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> ShareLinkResponse:
    try:
        async with await uow_factory() as uow:
            link = await create_share_link(
                uow, user_id, SharedResource.ALBUM, album_id, settings.share_link_ttl_days
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
