from typing import NoReturn

from fastapi import HTTPException, status

from src.core.plans import (
    PlanIdempotencyConflictError,
    PlanNotFoundError,
    PlanStateConflictError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_plan_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, PlanNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, (PlanIdempotencyConflictError, PlanStateConflictError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    raise exc
