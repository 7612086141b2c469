"""KIE.ai (Suno) client for text-to-music and audio-to-music (upload cover)."""

import re
from typing import Any

import httpx

from cadenza.models.generation_job import JobKind
from cadenza.services.exceptions import (
    PermanentError,
    ProviderQuotaExceeded,
    ProviderRejected,
    ProviderUnavailable,
)
from cadenza.services.providers.base import JobResult, ProviderObservation
from cadenza.services.providers.http import RestProvider, as_dict

IN_FLIGHT_STATES = {"PENDING", "TEXT_SUCCESS", "FIRST_SUCCESS"}
SUCCESS_STATE = "SUCCESS"

DEFAULT_WEIGHT = 0.65


def build_prompt_from_tags(tags: str, lyrics: str | None = None) -> dict[str, str]:
    """Split tags and lyrics into KIE's prompt / style / title fields.

    Lyrics become the prompt; without lyrics the prompt asks for a song in the
    tag style. The title is the first lyric line without its section marker.
    """
    lyrics = (lyrics or "").strip()
    if not lyrics:
        return {"prompt": f"Create a song in {tags} style", "style": tags, "title": f"{tags} Song"}
    first_line = re.sub(r"^\[.*?\]\s*", "", lyrics.split("\n")[0]).strip()
    return {"prompt": lyrics, "style": tags, "title": first_line or f"{tags} Song"}


def _raise_for_kie_code(payload: dict[str, Any]) -> None:
    """KIE wraps errors in a 200 response with its own code field."""
    code = payload.get("code")
    if code == 200:
        return
    msg = payload.get("msg") or "unknown error"
    if code == 429:
        raise ProviderQuotaExceeded("kie account is out of credits")
    if code in (430, 455) or (isinstance(code, int) and code >= 500):
        raise ProviderUnavailable(f"kie unavailable ({code}): {msg}")
    raise ProviderRejected(f"kie rejected request ({code}): {msg}")


class KieMusicProvider(RestProvider):
    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.kie.ai/api/v1",
        model: str = "V4",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            "kie",
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self.api_base = api_base.rstrip("/")
        self.model = model

    async def submit(self, kind: JobKind, job_input: dict[str, Any]) -> str:
        if kind not in (JobKind.TEXT_TO_MUSIC, JobKind.AUDIO_TO_MUSIC):
            raise ProviderRejected(f"kie does not handle {kind.value} jobs")

        fields = build_prompt_from_tags(job_input["tags"], job_input.get("lyrics"))
        if job_input.get("title"):
            fields["title"] = job_input["title"]

        body: dict[str, Any] = {
            **fields,
            "customMode": True,
            "instrumental": not job_input.get("lyrics"),
            "model": self.model,
            "negativeTags": "",
            "styleWeight": DEFAULT_WEIGHT,
            "weirdnessConstraint": DEFAULT_WEIGHT,
            "audioWeight": DEFAULT_WEIGHT,
        }

        if kind == JobKind.TEXT_TO_MUSIC:
            url = f"{self.api_base}/generate"
        else:
            url = f"{self.api_base}/generate/upload-cover"
            body["uploadUrl"] = job_input["input_audio_url"]

        payload = await self._request("POST", url, json=body)
        _raise_for_kie_code(payload)
        task_id = as_dict(payload.get("data")).get("taskId")
        if not task_id or not isinstance(task_id, str):
            raise ProviderRejected("kie returned no task id")
        return task_id

    async def get_status(self, external_job_id: str) -> ProviderObservation:
        try:
            payload = await self._request(
                "GET", f"{self.api_base}/generate/record-info", params={"taskId": external_job_id}
            )
            _raise_for_kie_code(payload)
        except PermanentError as e:
            return ProviderObservation.failed(f"Music generation failed: {e}")

        data = as_dict(payload.get("data"))
        state = str(data.get("status", "")).upper()

        if state in IN_FLIGHT_STATES:
            return ProviderObservation.processing()
        if state == SUCCESS_STATE:
            tracks = as_dict(data.get("response")).get("sunoData")
            first = as_dict(tracks[0]) if isinstance(tracks, list) and tracks else {}
            audio_url = first.get("audioUrl") or first.get("sourceAudioUrl")
            if not audio_url or not isinstance(audio_url, str):
                return ProviderObservation.failed("Music generation finished without audio")
            return ProviderObservation.completed(
                JobResult(audio_url=audio_url, image_url=first.get("imageUrl") or None)
            )
        if state.endswith(("FAILED", "ERROR", "EXCEPTION")):
            return ProviderObservation.failed(
                f"Music generation failed: {data.get('errorMessage') or state.lower()}"
            )
        return ProviderObservation.processing()
