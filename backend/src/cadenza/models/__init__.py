"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from cadenza.models.album import Album
from cadenza.models.generation_job import (
    GenerationJob,
    InvalidTransition,
    JobKind,
    JobStatus,
    Visibility,
)
from cadenza.models.plan import SubscriptionPlan
from cadenza.models.playlist import Playlist, PlaylistTrack
from cadenza.models.shareable_link import ShareableLink, SharedResource
from cadenza.models.site_setting import SiteSetting
from cadenza.models.user import PlanStatus, User

__all__ = [
    "User",
    "PlanStatus",
    "SubscriptionPlan",
    "GenerationJob",
    "JobKind",
    "JobStatus",
    "Visibility",
    "InvalidTransition",
    "Album",
    "Playlist",
    "PlaylistTrack",
    "ShareableLink",
    "SharedResource",
    "SiteSetting",
]
