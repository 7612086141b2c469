"""Playlist API endpoints.

- POST /api/playlists - Create a playlist
- POST /api/playlists/{playlist_id}/tracks - Append a track
- GET /api/playlists/{playlist_id} - Playlist with its tracks in order
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from cadenza.api.dependencies import get_current_user_id, get_optional_user_id, get_uow_factory
from cadenza.api.errors import to_http_exception
from cadenza.api.schemas import GenerationDTO
from cadenza.models.generation_job import JobStatus, Visibility
from cadenza.models.playlist import Playlist
from cadenza.services.exceptions import ServiceError

logger = structlog.get_logger()
router = APIRouter(prefix="/api/playlists", tags=["playlists"])


class CreatePlaylistRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool = False


class AddTrackRequest(BaseModel):
    track_id: UUID


class PlaylistDTO(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    description: str | None = None
    is_public: bool
    created_at: datetime
    updated_at: datetime
    tracks: list[GenerationDTO] = Field(default_factory=list)


def _to_dto(playlist: Playlist, tracks: list, requester_id: UUID | None) -> PlaylistDTO:
    return PlaylistDTO(
        id=playlist.id,
        user_id=playlist.user_id,
        name=playlist.name,
        description=playlist.description,
        is_public=playlist.is_public,
        created_at=playlist.created_at,
        updated_at=playlist.updated_at,
        tracks=[GenerationDTO.from_job(t, requester_id) for t in tracks],
    )


@router.post("", response_model=PlaylistDTO, status_code=status.HTTP_201_CREATED)
async def create_playlist(
    request: CreatePlaylistRequest,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PlaylistDTO:
    async with await uow_factory() as uow:
        playlist = await uow.playlists.add(
            Playlist(
                user_id=user_id,
                name=request.name,
                description=request.description,
                is_public=request.is_public,
            )
        )
    logger.info("playlist.created", playlist_id=str(playlist.id), user_id=str(user_id))
    return _to_dto(playlist, [], user_id)


@router.post(
    "/{playlist_id}/tracks", response_model=PlaylistDTO, status_code=status.HTTP_201_CREATED
)
async def add_playlist_track(
    playlist_id: UUID,
    request: AddTrackRequest,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PlaylistDTO:
    """Append a completed track the requester can read (own, or someone's public track)."""
    try:
        async with await uow_factory() as uow:
            playlist = await uow.playlists.get_by_id(playlist_id)
            if playlist is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND, detail="Playlist not found"
                )
            if playlist.user_id != user_id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Only the owner can add tracks to this playlist",
                )

            track = await uow.generation_jobs.get(request.track_id, user_id)
            if track.status != JobStatus.COMPLETED:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Only completed tracks can be added to a playlist",
                )
            if await uow.playlists.has_track(playlist.id, track.id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT, detail="Track is already in this playlist"
                )

            await uow.playlists.add_track(playlist, track.id)
            tracks = await uow.playlists.list_tracks(playlist.id)
    except ServiceError as e:
        raise to_http_exception(e)

    return _to_dto(playlist, tracks, user_id)


@router.get("/{playlist_id}", response_model=PlaylistDTO)
async def get_playlist(
    playlist_id: UUID,
    requester_id: UUID | None = Depends(get_optional_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PlaylistDTO:
    """Playlist tracks the requester may read: public ones, plus the requester's own."""
    async with await uow_factory() as uow:
        playlist = await uow.playlists.get_by_id(playlist_id)
        if playlist is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Playlist not found")
        if not playlist.is_public and playlist.user_id != requester_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="This playlist is private"
            )
        tracks = await uow.playlists.list_tracks(playlist.id)

    visible = [
        t for t in tracks if t.visibility == Visibility.PUBLIC or t.user_id == requester_id
    ]
    return _to_dto(playlist, visible, requester_id)
