"""Translation of service errors into HTTP responses."""

from fastapi import HTTPException, status

from cadenza.models.generation_job import InvalidTransition
from cadenza.services.exceptions import (
    ConflictError,
    EntitlementDenied,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    SubmissionFailed,
)


def to_http_exception(error: ServiceError | InvalidTransition) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, (ConflictError, InvalidTransition)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, EntitlementDenied):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={"reason": error.reason.value, "message": str(error)},
        )
    if isinstance(error, SubmissionFailed):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "job_id": str(error.job_id),
                "error_type": type(error.cause).__name__,
                "message": str(error),
            },
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
