"""Repository layer for Cadenza backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from cadenza.repositories.album import AlbumRepository
from cadenza.repositories.generation_job import GenerationJobRepository
from cadenza.repositories.plan import SubscriptionPlanRepository
from cadenza.repositories.playlist import PlaylistRepository
from cadenza.repositories.shareable_link import ShareableLinkRepository
from cadenza.repositories.site_setting import SiteSettingRepository
from cadenza.repositories.user import UserRepository

__all__ = [
    "UserRepository",
    "SubscriptionPlanRepository",
    "GenerationJobRepository",
    "AlbumRepository",
    "PlaylistRepository",
    "ShareableLinkRepository",
    "SiteSettingRepository",
]
