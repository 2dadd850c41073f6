from datetime import date, datetime
from typing import Annotated, Optional

from fastapi import Depends, Path, Query, status

from src.api.routers import plans as shared
from src.api.routers import plans_config
from src.api.routers.plan_http_errors import raise_plan_http_exception
from src.core.plans import (
    PlanExecutionLogResponse,
    PlanListResponse,
    PlanLifecycleError,
    PlanSummary,
    PlanSupportabilityConfigResponse,
    SystematicPlanService,
)
from src.core.plans.models import ExecutionAttemptOutcome, PlanStatus, PlanType

_PLAN_ID_PATH = Path(description="Systematic plan identifier.", examples=["SIP-20261019-A1B2C"])


@shared.router.get(
    "/systematic-plans/supportability/config",
    response_model=PlanSupportabilityConfigResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Systematic Plan Supportability Configuration",
    description=(
        "Returns plan repository backend readiness and the scheduler retry policy in effect "
        "for operational diagnostics without direct database access."
    ),
)
def get_plan_supportability_config() -> PlanSupportabilityConfigResponse:
    backend_error: Optional[str] = None
    backend_ready = True
    try:
        plans_config.build_repository()
    except RuntimeError as exc:
        backend_ready = False
        backend_error = str(exc)

    policy = plans_config.build_retry_policy()
    return PlanSupportabilityConfigResponse(
        store_backend=plans_config.plan_store_backend_name(),
        backend_ready=backend_ready,
        backend_init_error=backend_error,
        lifecycle_enabled=plans_config.plan_lifecycle_enabled(),
        scheduler_enabled=plans_config.plan_scheduler_enabled(),
        scheduler_timezone=policy.timezone_name,
        business_day_start=policy.business_day_start.strftime("%H:%M"),
        cutoff_time=policy.cutoff.strftime("%H:%M"),
        max_attempts=policy.max_attempts,
        retry_offsets_minutes=policy.retry_offsets_minutes,
    )


@shared.router.get(
    "/systematic-plans/executions",
    response_model=PlanExecutionLogResponse,
    status_code=status.HTTP_200_OK,
    summary="List Plan Execution Attempts",
    description=(
        "Operations view over the append-only execution log, filtered by plan, business-date "
        "range and attempt outcome, with cursor pagination."
    ),
)
def list_execution_logs(
    plan_id: Annotated[
        Optional[str],
        Query(description="Plan filter.", examples=["SIP-20261019-A1B2C"]),
    ] = None,
    business_date_from: Annotated[
        Optional[date],
        Query(description="Business-date lower bound.", examples=["2026-11-01"]),
    ] = None,
    business_date_to: Annotated[
        Optional[date],
        Query(description="Business-date upper bound.", examples=["2026-11-30"]),
    ] = None,
    outcome: Annotated[
        Optional[ExecutionAttemptOutcome],
        Query(description="Attempt outcome filter.", examples=["FAILED"]),
    ] = None,
    limit: Annotated[
        int,
        Query(description="Page size.", ge=1, le=200, examples=[50]),
    ] = 50,
    cursor: Annotated[
        Optional[str],
        Query(description="Opaque cursor from previous list response.", examples=["pel_123"]),
    ] = None,
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanExecutionLogResponse:
    shared._assert_lifecycle_enabled()
    return service.list_execution_logs(
        plan_id=plan_id,
        business_date_from=business_date_from,
        business_date_to=business_date_to,
        outcome=outcome,
        limit=limit,
        cursor=cursor,
    )


@shared.router.get(
    "/systematic-plans",
    response_model=PlanListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Systematic Plans",
    description="Lists plans with optional filters and cursor pagination, newest first.",
)
def list_plans(
    plan_type: Annotated[
        Optional[PlanType], Query(description="Plan type filter.", examples=["SIP"])
    ] = None,
    plan_status: Annotated[
        Optional[PlanStatus],
        Query(alias="status", description="Lifecycle status filter.", examples=["ACTIVE"]),
    ] = None,
    product_id: Annotated[
        Optional[str],
        Query(description="Product filter; matches STP source or target.", examples=["MF_EQ_001"]),
    ] = None,
    client_id: Annotated[
        Optional[str], Query(description="Investor filter.", examples=["client_001"])
    ] = None,
    created_from: Annotated[
        Optional[datetime],
        Query(
            description="Created-at lower bound in UTC ISO8601.",
            examples=["2026-10-01T00:00:00Z"],
        ),
    ] = None,
    created_to: Annotated[
        Optional[datetime],
        Query(
            description="Created-at upper bound in UTC ISO8601.",
            examples=["2026-10-31T23:59:59Z"],
        ),
    ] = None,
    next_execution_from: Annotated[
        Optional[date],
        Query(description="Next-execution-date lower bound.", examples=["2026-11-01"]),
    ] = None,
    next_execution_to: Annotated[
        Optional[date],
        Query(description="Next-execution-date upper bound.", examples=["2026-11-30"]),
    ] = None,
    q: Annotated[
        Optional[str],
        Query(description="Case-insensitive plan identifier search.", examples=["SIP-2026"]),
    ] = None,
    limit: Annotated[
        int,
        Query(description="Page size.", ge=1, le=100, examples=[20]),
    ] = 20,
    cursor: Annotated[
        Optional[str],
        Query(
            description="Opaque cursor from previous list response.",
            examples=["SIP-20261019-A1B2C"],
        ),
    ] = None,
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanListResponse:
    shared._assert_lifecycle_enabled()
    return service.list_plans(
        plan_type=plan_type,
        status=plan_status,
        product_id=product_id,
        client_id=client_id,
        created_from=created_from,
        created_to=created_to,
        next_execution_from=next_execution_from,
        next_execution_to=next_execution_to,
        plan_id_query=q,
        limit=limit,
        cursor=cursor,
    )


@shared.router.get(
    "/systematic-plans/{plan_id}",
    response_model=PlanSummary,
    status_code=status.HTTP_200_OK,
    summary="Get Systematic Plan",
    description="Returns the current state of one plan.",
)
def get_plan(
    plan_id: Annotated[str, _PLAN_ID_PATH],
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanSummary:
    shared._assert_lifecycle_enabled()
    try:
        return service.get_plan(plan_id=plan_id)
    except PlanLifecycleError as exc:
        raise_plan_http_exception(exc)


@shared.router.get(
    "/systematic-plans/{plan_id}/executions",
    response_model=PlanExecutionLogResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Plan Execution Log",
    description="Returns every execution attempt recorded for the plan, oldest first.",
)
def get_plan_execution_log(
    plan_id: Annotated[str, _PLAN_ID_PATH],
    service: SystematicPlanService = Depends(shared.get_plan_service),
) -> PlanExecutionLogResponse:
    shared._assert_lifecycle_enabled()
    try:
        return service.get_execution_log(plan_id=plan_id)
    except PlanLifecycleError as exc:
        raise_plan_http_exception(exc)
