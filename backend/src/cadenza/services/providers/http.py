"""Shared httpx plumbing for REST-based generation providers.

Classifies HTTP failures into the provider error taxonomy the same way for
every REST adapter (FAL, KIE, MUX).
"""

from typing import Any

import httpx

from cadenza.services.exceptions import (
    ProviderQuotaExceeded,
    ProviderRejected,
    ProviderUnavailable,
)


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Raise the taxonomy error matching a non-2xx provider response.

    Classification rules:
        - 429 (rate limit), 408, 5xx → ProviderUnavailable
        - 402 (payment required) → ProviderQuotaExceeded
        - Other 4xx (auth, validation, unknown job) → ProviderRejected
    """
    code = response.status_code
    if code < 400:
        return

    detail = response.text[:200]
    if code in (408, 429) or code >= 500:
        raise ProviderUnavailable(f"{provider} unavailable ({code}): {detail}")
    if code == 402:
        raise ProviderQuotaExceeded(f"{provider} account is out of credits")
    if code in (401, 403):
        raise ProviderRejected(f"{provider} rejected credentials ({code})")
    raise ProviderRejected(f"{provider} rejected request ({code}): {detail}")


class RestProvider:
    """Base for providers talking JSON over HTTPS with httpx.AsyncClient.

    Args:
        provider: Provider name used in error messages
        headers: Default request headers (authorization)
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
        auth: Optional httpx auth (basic auth for MUX)
    """

    def __init__(
        self,
        provider: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
    ):
        self.name = provider
        self.headers = headers or {}
        self.timeout = timeout
        self.transport = transport
        self.auth = auth

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Send request and return decoded JSON body.

        Raises:
            ProviderUnavailable: Timeout, connection error, 429, 5xx
            ProviderRejected: 4xx or a body that is not a JSON object
            ProviderQuotaExceeded: 402
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, auth=self.auth
            ) as client:
                response = await client.request(method, url, headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(f"{self.name} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{self.name} network error: {e}") from e

        raise_for_provider_status(response, self.name)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderRejected(f"{self.name} returned a non-JSON response") from e

        if not isinstance(data, dict):
            raise ProviderRejected(
                f"{self.name} returned an unexpected response shape ({type(data).__name__})"
            )
        return data


def as_dict(value: Any) -> dict[str, Any]:
    """Nested provider field as a dict; anything else reads as empty."""
    return value if isinstance(value, dict) else {}
