"""Read access rules for tracks and albums, and shareable link handling.

A private track is readable by its owner, or by anyone holding a valid link
to the track or to the album containing it.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from uuid import UUID

import structlog

from cadenza.core.timezone import utcnow
from cadenza.models.album import Album
from cadenza.models.generation_job import GenerationJob, JobStatus, Visibility
from cadenza.models.shareable_link import ShareableLink, SharedResource
from cadenza.services.exceptions import ForbiddenError, NotFoundError
from cadenza.uow import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass
class SharedContent:
    link: ShareableLink
    album: Album | None = None
    tracks: list[GenerationJob] = field(default_factory=list)


def link_grants_job(link: ShareableLink | None, job: GenerationJob) -> bool:
    if link is None:
        return False
    if link.resource_type == SharedResource.TRACK:
        return link.resource_id == job.id
    return job.album_id is not None and link.resource_id == job.album_id


async def ensure_job_readable(
    uow: UnitOfWork, job_id: UUID, requester_id: UUID | None, share_token: str | None = None
) -> GenerationJob:
    """Load a job for reading, honoring visibility and share links.

    Raises:
        NotFoundError: If the job does not exist
        ForbiddenError: If the job is private and no ownership or valid link applies
    """
    try:
        return await uow.generation_jobs.get(job_id, requester_id)
    except ForbiddenError:
        if not share_token:
            raise
        job = await uow.generation_jobs.get_by_id(job_id)
        link = await uow.shareable_links.get_valid(share_token)
        if job is None or not link_grants_job(link, job):
            raise
        return job


async def ensure_album_readable(
    uow: UnitOfWork, album_id: UUID, requester_id: UUID | None, share_token: str | None = None
) -> tuple[Album, list[GenerationJob]]:
    """Load an album and the tracks the requester may see.

    The owner sees every track, a link holder sees every completed track,
    anyone else sees completed public tracks of a public album.

    Raises:
        NotFoundError: If the album does not exist
        ForbiddenError: If the album is private and no ownership or valid link applies
    """
    album = await uow.albums.get_by_id(album_id)
    if album is None:
        raise NotFoundError(f"Album {album_id} not found")

    tracks = await uow.generation_jobs.list_by_album(album.id)
    if album.user_id == requester_id:
        return album, tracks

    via_link = False
    if share_token:
        link = await uow.shareable_links.get_valid(share_token)
        via_link = (
            link is not None
            and link.resource_type == SharedResource.ALBUM
            and link.resource_id == album.id
        )

    if via_link:
        return album, [t for t in tracks if t.status == JobStatus.COMPLETED]

    if album.visibility == Visibility.PRIVATE:
        raise ForbiddenError("This album is private")

    return album, [
        t
        for t in tracks
        if t.status == JobStatus.COMPLETED and t.visibility == Visibility.PUBLIC
    ]


async def create_share_link(
    uow: UnitOfWork,
    owner_id: UUID,
    resource_type: SharedResource,
    resource_id: UUID,
    ttl_days: int | None = None,
) -> ShareableLink:
    """Create a link for an album or track owned by owner_id.

    Raises:
        NotFoundError: If the resource does not exist
        ForbiddenError: If the requester does not own the resource
    """
    resource: Album | GenerationJob | None
    if resource_type == SharedResource.ALBUM:
        resource = await uow.albums.get_by_id(resource_id)
    else:
        resource = await uow.generation_jobs.get_by_id(resource_id)

    if resource is None:
        raise NotFoundError(f"{resource_type.value.capitalize()} {resource_id} not found")
    if resource.user_id != owner_id:
        raise ForbiddenError(f"Only the owner can share this {resource_type.value}")

    expires_at = utcnow() + timedelta(days=ttl_days) if ttl_days else None
    link = await uow.shareable_links.create(resource_type, resource_id, owner_id, expires_at)
    logger.info(
        "share_link.created",
        resource_type=resource_type.value,
        resource_id=str(resource_id),
        expires_at=expires_at.isoformat() if expires_at else None,
    )
    return link


async def resolve_share_link(uow: UnitOfWork, token: str) -> SharedContent:
    """Resolve a token to its album or track and count the view.

    Raises:
        NotFoundError: If the token is unknown, revoked or expired, or the
            shared resource no longer exists
    """
    link = await uow.shareable_links.get_valid(token)
    if link is None:
        raise NotFoundError("Share link not found or expired")

    if link.resource_type == SharedResource.ALBUM:
        album = await uow.albums.get_by_id(link.resource_id)
        if album is None:
            raise NotFoundError("Shared album no longer exists")
        tracks = await uow.generation_jobs.list_by_album(album.id)
        content = SharedContent(
            link=link,
            album=album,
            tracks=[t for t in tracks if t.status == JobStatus.COMPLETED],
        )
    else:
        job = await uow.generation_jobs.get_by_id(link.resource_id)
        if job is None:
            raise NotFoundError("Shared track no longer exists")
        content = SharedContent(link=link, tracks=[job])

    await uow.shareable_links.increment_view_count(link)
    return content


async def revoke_share_link(uow: UnitOfWork, token: str, requester_id: UUID) -> ShareableLink:
    """Revoke a link. Only the user who created it may do so.

    Raises:
        NotFoundError: If the token is unknown
        ForbiddenError: If the requester did not create the link
    """
    link = await uow.shareable_links.get_by_token(token)
    if link is None:
        raise NotFoundError("Share link not found")
    if link.user_id != requester_id:
        raise ForbiddenError("Only the owner can revoke this link")
    link = await uow.shareable_links.revoke(link)
    logger.info("share_link.revoked", link_id=str(link.id))
    return link
