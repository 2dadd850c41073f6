from typing import Annotated, Optional

from fastapi import Depends, Header, Path, Response, status

from src.api.routers import plans as shared
from src.api.routers.plan_http_errors import HTTP_422_UNPROCESSABLE, raise_plan_http_exception
from src.core.plans import (
    PlanCancelRequest,
    PlanCreateRequest,
    PlanLifecycleError,
    PlanModifyRequest,
    PlanMutationResponse,
    SystematicPlanService,
)

_MUTATION_RESPONSES = {
    404: {"description": "Plan not found."},
    409: {"description": "Plan state or idempotency conflict."},
    422: {"model": PlanMutationResponse, "description": "Validation errors; nothing applied."},
    503: {"description": "Plan repository backend unavailable."},
}


def _with_status(response: Response, result: PlanMutationResponse) -> PlanMutationResponse:
    if not result.accepted:
        response.status_code = HTTP_422_UNPROCESSABLE
    return result


@shared.router.post(
    "/systematic-plans",
    response_model=PlanMutationResponse,
    status_code=status.HTTP_200_OK,
    responses=_MUTATION_RESPONSES,
    summary="Create Systematic Plan",
    description=(
        "Validates the plan terms and its first installment, then persists an ACTIVE plan. "
        "Validation errors are returned together with HTTP 422 and nothing is stored."
    ),
)
def create_plan(
    payload: PlanCreateRequest,
    response: Response,
    idempotency_key: Annotated[
        Optional[str],
        Header(
            alias="Idempotency-Key",
            description="Optional idempotency key for plan-create deduplication.",
            examples=["plan-create-idem-001"],
        ),
    ] = None,
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanMutationResponse:
    shared._assert_lifecycle_enabled()
    try:
        result = service.create_plan(payload=payload, idempotency_key=idempotency_key)
    except PlanLifecycleError as exc:
        raise_plan_http_exception(exc)
    return _with_status(response, result)


@shared.router.patch(
    "/systematic-plans/{plan_id}",
    response_model=PlanMutationResponse,
    status_code=status.HTTP_200_OK,
    responses=_MUTATION_RESPONSES,
    summary="Modify Systematic Plan",
    description=(
        "Changes amount, frequency, installment count, nominees, nomination opt-out, or EUIN "
        "of an ACTIVE plan that is not due today. The modified terms are re-validated."
    ),
)
def modify_plan(
    payload: PlanModifyRequest,
    response: Response,
    plan_id: Annotated[
        str,
        Path(description="Systematic plan identifier.", examples=["SIP-20261019-A1B2C"]),
    ],
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanMutationResponse:
    shared._assert_lifecycle_enabled()
    try:
        result = service.modify_plan(plan_id=plan_id, payload=payload)
    except PlanLifecycleError as exc:
        raise_plan_http_exception(exc)
    return _with_status(response, result)


@shared.router.post(
    "/systematic-plans/{plan_id}/cancel",
    response_model=PlanMutationResponse,
    status_code=status.HTTP_200_OK,
    responses=_MUTATION_RESPONSES,
    summary="Cancel Systematic Plan",
    description=(
        "Irreversibly cancels an ACTIVE plan. Requires `confirm=true`; cancelling a plan that "
        "is already terminal is a conflict."
    ),
)
def cancel_plan(
    payload: PlanCancelRequest,
    response: Response,
    plan_id: Annotated[
        str,
        Path(description="Systematic plan identifier.", examples=["SIP-20261019-A1B2C"]),
    ],
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanMutationResponse:
    shared._assert_lifecycle_enabled()
    try:
        result = service.cancel_plan(plan_id=plan_id, payload=payload)
    except PlanLifecycleError as exc:
        raise_plan_http_exception(exc)
    return _with_status(response, result)
