"""FastAPI dependencies for request validation and common operations.

This module provides reusable FastAPI dependencies for:
- Billing webhook signature validation
- Requester identity (X-User-Id header)
- Access to the UoW factory and generation service in app.state
"""

from typing import Annotated, Callable
from uuid import UUID

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from cadenza.core.config import Settings
from cadenza.services.billing.signature import WEBHOOK_SECRET_SETTING, verify_stripe_signature
from cadenza.services.entitlements import EntitlementGate
from cadenza.services.generation import GenerationService
from cadenza.uow import UnitOfWork

logger = structlog.get_logger()


def get_settings() -> Settings:
    """Get application settings instance.

    Returns:
        Settings instance loaded from environment variables.
    """
    return Settings()  # type: ignore[call-arg]  # Pydantic loads from env vars


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generation_jobs.get_by_id(job_id)
    """
    return request.app.state.uow_factory


def get_generation_service(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> GenerationService:
    return GenerationService(
        uow_factory=request.app.state.uow_factory,
        providers=request.app.state.providers,
        gate=EntitlementGate(settings),
        poller=request.app.state.poller,
    )


def _parse_user_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="X-User-Id must be a UUID"
        )


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Identity of the signed-in requester.

    Raises:
        HTTPException: 401 if the header is missing, 400 if it is not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    return _parse_user_id(x_user_id)


async def get_optional_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> UUID | None:
    """Identity of the requester, or None for anonymous reads."""
    if not x_user_id:
        return None
    return _parse_user_id(x_user_id)


async def validate_billing_signature(
    request: Request,
    stripe_signature: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
    uow_factory=Depends(get_uow_factory),
) -> bytes:
    """Validate the billing webhook signature before processing the request.

    The signing secret comes from STRIPE_WEBHOOK_SECRET, or from the
    ``stripe_webhook_secret`` site setting when the variable is unset.

    Returns:
        Raw request body bytes (for further processing by the endpoint)

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or invalid,
            500 if no signing secret is configured
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Stripe-Signature header"
        )

    secret = settings.stripe_webhook_secret
    if not secret:
        async with await uow_factory() as uow:
            stored = await uow.site_settings.get_value(WEBHOOK_SECRET_SETTING)
        secret = stored if isinstance(stored, str) else ""

    if not secret:
        logger.error("billing_webhook.secret_missing")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Billing webhook secret is not configured",
        )

    # Exact bytes received; the signature covers them verbatim
    raw_body = await request.body()

    is_valid = verify_stripe_signature(
        raw_body=raw_body,
        header=stripe_signature,
        secret=secret,
        tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )
    if not is_valid:
        logger.warning("billing_webhook.invalid_signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature"
        )

    return raw_body
