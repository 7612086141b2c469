"""FAL.ai queue client for ACE-Step music generation (text and audio input)."""

from typing import Any

import httpx

from cadenza.models.generation_job import JobKind
from cadenza.services.exceptions import PermanentError, ProviderRejected
from cadenza.services.providers.base import JobResult, ProviderObservation
from cadenza.services.providers.http import RestProvider, as_dict

TEXT_TO_MUSIC_APP = "fal-ai/ace-step"
AUDIO_TO_MUSIC_APP = "fal-ai/ace-step/audio-to-audio"
# Queue status and result endpoints live under the base app id for both variants
STATUS_APP = "fal-ai/ace-step"


class FalMusicProvider(RestProvider):
    """Music generation through FAL.ai's asynchronous request queue.

    Queue states map as: IN_QUEUE → submitted, IN_PROGRESS → processing,
    COMPLETED → completed once the result carries an audio URL.
    """

    def __init__(
        self,
        api_key: str,
        queue_url: str = "https://queue.fal.run",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            "fal",
            headers={"Authorization": f"Key {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self.queue_url = queue_url.rstrip("/")

    async def submit(self, kind: JobKind, job_input: dict[str, Any]) -> str:
        if kind not in (JobKind.TEXT_TO_MUSIC, JobKind.AUDIO_TO_MUSIC):
            raise ProviderRejected(f"fal does not handle {kind.value} jobs")

        tags = job_input["tags"]
        lyrics = job_input.get("lyrics") or ""

        if kind == JobKind.TEXT_TO_MUSIC:
            app = TEXT_TO_MUSIC_APP
            body: dict[str, Any] = {"tags": tags, "lyrics": lyrics}
            if job_input.get("duration") is not None:
                body["duration"] = job_input["duration"]
        else:
            app = AUDIO_TO_MUSIC_APP
            body = {
                "audio_url": job_input["input_audio_url"],
                "tags": tags,
                "original_tags": tags,
                "lyrics": lyrics,
            }

        data = await self._request("POST", f"{self.queue_url}/{app}", json=body)
        request_id = data.get("request_id")
        if not request_id or not isinstance(request_id, str):
            raise ProviderRejected("fal returned no request id")
        return request_id

    async def get_status(self, external_job_id: str) -> ProviderObservation:
        base = f"{self.queue_url}/{STATUS_APP}/requests/{external_job_id}"
        try:
            status = await self._request("GET", f"{base}/status")
        except PermanentError as e:
            return ProviderObservation.failed(f"Music generation failed: {e}")

        state = str(status.get("status", "")).upper()
        if state == "IN_QUEUE":
            return ProviderObservation.submitted()
        if state == "IN_PROGRESS":
            return ProviderObservation.processing()
        if state in ("FAILED", "ERROR"):
            return ProviderObservation.failed(
                f"Music generation failed: {status.get('error') or 'provider reported failure'}"
            )
        if state != "COMPLETED":
            return ProviderObservation.processing()

        try:
            result = await self._request("GET", base)
        except PermanentError as e:
            return ProviderObservation.failed(f"Music generation failed: {e}")

        audio_url = as_dict(result.get("audio")).get("url")
        if not audio_url or not isinstance(audio_url, str):
            return ProviderObservation.failed("Music generation finished without audio")
        seed = result.get("seed")
        return ProviderObservation.completed(
            JobResult(audio_url=audio_url, seed=seed if isinstance(seed, int) else None)
        )
