"""Service error hierarchy for generation providers and domain operations.

- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (validation, rejected jobs, exhausted credits)

Provider adapters translate every SDK / HTTP failure into one of the
provider errors below before it leaves the adapter.
"""

from enum import Enum


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry."""

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry."""

    pass


# Provider errors
class ProviderUnavailable(TransientError):
    """Network failure, timeout, rate limit or 5xx from a generation provider."""

    pass


class ProviderRejected(PermanentError):
    """Provider refused the request (4xx validation, content policy, bad response)."""

    pass


class ProviderQuotaExceeded(PermanentError):
    """Provider account is out of credits or over its billing quota."""

    pass


class PollingTimedOut(PermanentError):
    """Status polling gave up before the provider reported a terminal state."""

    pass


class SubmissionExpired(PermanentError):
    """The pending job was failed as stale while its provider call was in flight."""

    pass


# Domain errors
class NotFoundError(ServiceError):
    """Requested entity does not exist."""

    pass


class ForbiddenError(ServiceError):
    """Requester is not allowed to read or modify the entity."""

    pass


class ConflictError(ServiceError):
    """Operation is not allowed in the entity's current state."""

    pass


class DenialReason(str, Enum):
    QUOTA_EXCEEDED = "QuotaExceeded"
    PLAN_EXPIRED = "PlanExpired"
    PLAN_INACTIVE = "PlanInactive"


class EntitlementDenied(ServiceError):
    """Submission refused by the entitlement gate before any external call."""

    def __init__(self, reason: DenialReason, message: str):
        super().__init__(message)
        self.reason = reason


class SubmissionFailed(ServiceError):
    """Provider submission failed after the job row was created.

    The job has been marked failed and its quota reservation released.
    """

    def __init__(self, job_id, message: str, cause: ServiceError):
        super().__init__(message)
        self.job_id = job_id
        self.cause = cause
