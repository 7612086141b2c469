"""MUX Video client: transcodes a generated music video into an HLS asset."""

from typing import Any

import httpx

from cadenza.models.generation_job import JobKind
from cadenza.services.exceptions import PermanentError, ProviderRejected
from cadenza.services.providers.base import JobResult, ProviderObservation
from cadenza.services.providers.http import RestProvider, as_dict

MUX_API_BASE = "https://api.mux.com/video/v1"


def normalize_video_url(video_url: str, public_base_url: str) -> str:
    """Make a stored video path absolute so MUX can fetch it."""
    if video_url.startswith(("http://", "https://")):
        return video_url
    return f"{public_base_url.rstrip('/')}/{video_url.lstrip('/')}"


class MuxTranscodeProvider(RestProvider):
    """Asset states map as: preparing → processing, ready → completed, errored → failed."""

    def __init__(
        self,
        token_id: str,
        token_secret: str,
        public_base_url: str,
        api_base: str = MUX_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            "mux",
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
            auth=(token_id, token_secret),
        )
        self.public_base_url = public_base_url
        self.api_base = api_base.rstrip("/")

    async def submit(self, kind: JobKind, job_input: dict[str, Any]) -> str:
        if kind != JobKind.VIDEO_TRANSCODE:
            raise ProviderRejected(f"mux does not handle {kind.value} jobs")

        body = {
            "inputs": [{"url": normalize_video_url(job_input["video_url"], self.public_base_url)}],
            "playback_policy": ["public"],
            "encoding_tier": "baseline",
            "mp4_support": "none",
            "normalize_audio": True,
        }
        payload = await self._request("POST", f"{self.api_base}/assets", json=body)
        asset_id = as_dict(payload.get("data")).get("id")
        if not asset_id or not isinstance(asset_id, str):
            raise ProviderRejected("mux returned no asset id")
        return asset_id

    async def get_status(self, external_job_id: str) -> ProviderObservation:
        try:
            payload = await self._request("GET", f"{self.api_base}/assets/{external_job_id}")
        except PermanentError as e:
            return ProviderObservation.failed(f"Video processing failed: {e}")

        asset = as_dict(payload.get("data"))
        status = asset.get("status")

        if status == "ready":
            playback_ids = asset.get("playback_ids")
            if not isinstance(playback_ids, list) or not playback_ids:
                playback_ids = [{}]
            playback_id = as_dict(playback_ids[0]).get("id")
            if not playback_id or not isinstance(playback_id, str):
                return ProviderObservation.failed("Video processing finished without playback id")
            return ProviderObservation.completed(JobResult(playback_id=playback_id))
        if status == "errored":
            messages = as_dict(asset.get("errors")).get("messages")
            if not isinstance(messages, list):
                messages = []
            reason = "; ".join(str(m) for m in messages) or "asset errored"
            return ProviderObservation.failed(f"Video processing failed: {reason}")
        return ProviderObservation.processing()
