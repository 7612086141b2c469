"""External Job Client adapters, one per third-party API."""

from cadenza.core.config import Settings
from cadenza.models.generation_job import JobKind
from cadenza.services.providers.base import (
    JobProvider,
    JobResult,
    ObservedState,
    ProviderObservation,
)
from cadenza.services.providers.fal import FalMusicProvider
from cadenza.services.providers.kie import KieMusicProvider
from cadenza.services.providers.mux import MuxTranscodeProvider
from cadenza.services.providers.replicate_image import ReplicateImageProvider


def build_provider_registry(settings: Settings) -> dict[JobKind, JobProvider]:
    """Map every job kind to the provider configured for it."""
    music: JobProvider
    if settings.music_provider == "kie":
        music = KieMusicProvider(
            api_key=settings.kie_api_key,
            api_base=settings.kie_api_base,
            model=settings.kie_model,
            timeout=settings.provider_timeout_seconds,
        )
    else:
        music = FalMusicProvider(
            api_key=settings.fal_key,
            queue_url=settings.fal_queue_url,
            timeout=settings.provider_timeout_seconds,
        )

    return {
        JobKind.TEXT_TO_MUSIC: music,
        JobKind.AUDIO_TO_MUSIC: music,
        JobKind.IMAGE: ReplicateImageProvider(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version,
        ),
        JobKind.VIDEO_TRANSCODE: MuxTranscodeProvider(
            token_id=settings.mux_token_id,
            token_secret=settings.mux_token_secret,
            public_base_url=settings.public_base_url,
            timeout=settings.provider_timeout_seconds,
        ),
    }


__all__ = [
    "JobProvider",
    "JobResult",
    "ObservedState",
    "ProviderObservation",
    "FalMusicProvider",
    "KieMusicProvider",
    "MuxTranscodeProvider",
    "ReplicateImageProvider",
    "build_provider_registry",
]
