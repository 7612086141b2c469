"""GenerationJob entity - one row per generation request, any job kind."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from cadenza.core.timezone import utcnow


class JobKind(str, Enum):
    """Category of generation work."""

    TEXT_TO_MUSIC = "text-to-music"
    AUDIO_TO_MUSIC = "audio-to-music"
    IMAGE = "image"
    VIDEO_TRANSCODE = "video-transcode"


class JobStatus(str, Enum):
    """Generation job lifecycle status."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class InvalidTransition(Exception):
    """Raised when attempting an invalid generation job state transition."""

    pass


class GenerationJob(SQLModel, table=True):
    """GenerationJob tracks an externally-owned job from submission to terminal state.

    Result fields (audio_url, image_url, playback_id, seed) are only set when
    the job is completed; error_message is only set when it failed.
    """

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    kind: JobKind = Field(index=True)
    input_payload: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    external_job_id: Optional[str] = Field(default=None, max_length=255)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)

    # Result (completed only)
    audio_url: Optional[str] = Field(default=None)
    image_url: Optional[str] = Field(default=None)
    playback_id: Optional[str] = Field(default=None, max_length=255)
    seed: Optional[int] = Field(default=None)

    # Error (failed only)
    error_message: Optional[str] = Field(default=None, max_length=1000)

    # Library metadata, editable by the owner after completion
    visibility: Visibility = Field(default=Visibility.PUBLIC, index=True)
    title: Optional[str] = Field(default=None, max_length=255)
    album_id: Optional[UUID] = Field(default=None, foreign_key="albums.id", index=True)
    show_in_gallery: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_result(self) -> bool:
        return any(
            value is not None
            for value in (self.audio_url, self.image_url, self.playback_id, self.seed)
        )

    @property
    def hls_url(self) -> str | None:
        if not self.playback_id:
            return None
        return f"https://stream.mux.com/{self.playback_id}.m3u8"

    def mark_submitted(self, external_job_id: str) -> None:
        """Transition from pending to submitted.

        Raises:
            InvalidTransition: If current status is not pending
            ValueError: If external_job_id is empty
        """
        if self.status != JobStatus.PENDING:
            raise InvalidTransition(
                f"Cannot mark submitted from {self.status.value}. Job must be in pending state."
            )
        if not external_job_id:
            raise ValueError("external_job_id is required")
        self.external_job_id = external_job_id
        self.status = JobStatus.SUBMITTED

    def mark_processing(self) -> bool:
        """Transition from submitted to processing.

        Returns:
            True if the status changed, False if the job was already processing

        Raises:
            InvalidTransition: If current status is pending or terminal
        """
        if self.status == JobStatus.PROCESSING:
            return False
        if self.status != JobStatus.SUBMITTED:
            raise InvalidTransition(
                f"Cannot mark processing from {self.status.value}. "
                "Job must be in submitted state."
            )
        self.status = JobStatus.PROCESSING
        return True

    def mark_completed(
        self,
        audio_url: str | None = None,
        image_url: str | None = None,
        playback_id: str | None = None,
        seed: int | None = None,
    ) -> None:
        """Transition from submitted/processing to completed and store the result.

        Raises:
            InvalidTransition: If the job has not been submitted or is terminal
            ValueError: If no result reference is given
        """
        if self.status not in (JobStatus.SUBMITTED, JobStatus.PROCESSING):
            raise InvalidTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Job must be submitted or processing."
            )
        if not (audio_url or image_url or playback_id):
            raise ValueError("A completed job needs at least one result URL or playback id")
        self.audio_url = audio_url
        self.image_url = image_url
        self.playback_id = playback_id
        self.seed = seed
        self.error_message = None
        self.status = JobStatus.COMPLETED

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed.

        Raises:
            InvalidTransition: If current status is already terminal
        """
        if self.status.is_terminal:
            raise InvalidTransition(f"Cannot mark failed from terminal state {self.status.value}.")
        self.audio_url = None
        self.image_url = None
        self.playback_id = None
        self.seed = None
        self.error_message = (error_message or "Generation failed")[:1000]
        self.status = JobStatus.FAILED
