"""Replicate predictions client for image generation with error classification."""

import asyncio
from typing import Any

import replicate
from replicate.exceptions import ReplicateError as ReplicateAPIError

from cadenza.models.generation_job import JobKind
from cadenza.services.exceptions import (
    ProviderQuotaExceeded,
    ProviderRejected,
    ProviderUnavailable,
    ServiceError,
)
from cadenza.services.providers.base import JobResult, ProviderObservation
from cadenza.services.providers.prompt_validator import validate_prompt


def classify_error(exception: Exception) -> ServiceError:
    """Classify exception from the Replicate SDK into the provider taxonomy.

    Classification rules:
        - Timeout, 429 (rate limit), 503 / 5xx → ProviderUnavailable
        - 402 / billing / insufficient credit → ProviderQuotaExceeded
        - Connection errors → ProviderUnavailable
        - Authentication, content policy, other HTTP errors → ProviderRejected
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    status = getattr(exception, "status", None)

    if "timeout" in error_message_lower or isinstance(exception, TimeoutError):
        return ProviderUnavailable(f"Network timeout: {error_message}")

    if status == 429 or "429" in error_message or "rate limit" in error_message_lower:
        return ProviderUnavailable(f"Rate limit exceeded: {error_message}")

    if (isinstance(status, int) and status >= 500) or "service unavailable" in error_message_lower:
        return ProviderUnavailable(f"Service unavailable: {error_message}")

    if (
        status == 402
        or "payment required" in error_message_lower
        or "billing" in error_message_lower
        or "insufficient credit" in error_message_lower
    ):
        return ProviderQuotaExceeded("replicate account is out of credits")

    if isinstance(exception, (ConnectionError, OSError)):
        return ProviderUnavailable(f"Connection error: {error_message}")

    if status in (401, 403) or "unauthorized" in error_message_lower:
        return ProviderRejected("replicate rejected credentials")

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return ProviderRejected("Prompt was rejected by the content policy")

    return ProviderRejected(f"replicate rejected request: {error_message[:200]}")


def _first_output_url(output: Any) -> str | None:
    """Extract URL from prediction output (format varies by model)."""
    if isinstance(output, list):
        return str(output[0]) if output else None
    if output:
        return str(output)
    return None


class ReplicateImageProvider:
    """Image generation through Replicate predictions.

    The SDK is synchronous, so calls run in a worker thread. Prediction
    states map as: starting → submitted, processing → processing,
    succeeded → completed, failed / canceled → failed.
    """

    name = "replicate"

    def __init__(
        self,
        api_token: str,
        model_version: str = "black-forest-labs/flux-schnell",
        client: Any = None,
    ):
        self.model_version = model_version
        self.client = client or replicate.Client(api_token=api_token)

    async def submit(self, kind: JobKind, job_input: dict[str, Any]) -> str:
        if kind != JobKind.IMAGE:
            raise ProviderRejected(f"replicate does not handle {kind.value} jobs")

        try:
            prompt = validate_prompt(job_input.get("prompt", ""))
        except ValueError as e:
            raise ProviderRejected(str(e)) from e

        model_input: dict[str, Any] = {"prompt": prompt}
        if job_input.get("aspect_ratio"):
            model_input["aspect_ratio"] = job_input["aspect_ratio"]

        def _create() -> Any:
            return self.client.predictions.create(model=self.model_version, input=model_input)

        try:
            prediction = await asyncio.to_thread(_create)
        except (ReplicateAPIError, ConnectionError, OSError, TimeoutError) as e:
            raise classify_error(e) from e

        if not getattr(prediction, "id", None):
            raise ProviderRejected("replicate returned no prediction id")
        return prediction.id

    async def get_status(self, external_job_id: str) -> ProviderObservation:
        try:
            prediction = await asyncio.to_thread(self.client.predictions.get, external_job_id)
        except (ReplicateAPIError, ConnectionError, OSError, TimeoutError) as e:
            classified = classify_error(e)
            if isinstance(classified, ProviderUnavailable):
                raise classified from e
            return ProviderObservation.failed(f"Image generation failed: {classified}")

        status = prediction.status
        if status == "starting":
            return ProviderObservation.submitted()
        if status == "processing":
            return ProviderObservation.processing()
        if status == "succeeded":
            image_url = _first_output_url(prediction.output)
            if not image_url:
                return ProviderObservation.failed("Image generation finished without an image")
            return ProviderObservation.completed(JobResult(image_url=image_url))
        if status in ("failed", "canceled"):
            return ProviderObservation.failed(
                f"Image generation failed: {prediction.error or status}"
            )
        return ProviderObservation.processing()
