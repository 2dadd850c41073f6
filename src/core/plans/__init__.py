from src.core.plans.collaborators import (
    MarketValueSource,
    OrderBook,
    OrderSubmissionResult,
    ProductCatalog,
)
from src.core.plans.models import (
    InstallmentTerms,
    PlanCancelRequest,
    PlanCreateRequest,
    PlanExecutionLogEntry,
    PlanExecutionLogRecord,
    PlanExecutionLogResponse,
    PlanExecutionOutcome,
    PlanIdempotencyRecord,
    PlanListResponse,
    PlanModifyRequest,
    PlanMutationResponse,
    PlanSummary,
    PlanSupportabilityConfigResponse,
    SystematicPlanRecord,
)
from src.core.plans.repository import SystematicPlanRepository
from src.core.plans.service import (
    PlanIdempotencyConflictError,
    PlanLifecycleError,
    PlanNotFoundError,
    PlanStateConflictError,
    SystematicPlanService,
)

__all__ = [
    "InstallmentTerms",
    "MarketValueSource",
    "OrderBook",
    "OrderSubmissionResult",
    "PlanCancelRequest",
    "PlanCreateRequest",
    "PlanExecutionLogEntry",
    "PlanExecutionLogRecord",
    "PlanExecutionLogResponse",
    "PlanExecutionOutcome",
    "PlanIdempotencyConflictError",
    "PlanIdempotencyRecord",
    "PlanLifecycleError",
    "PlanListResponse",
    "PlanModifyRequest",
    "PlanMutationResponse",
    "PlanNotFoundError",
    "PlanStateConflictError",
    "PlanSummary",
    "PlanSupportabilityConfigResponse",
    "ProductCatalog",
    "SystematicPlanRecord",
    "SystematicPlanRepository",
    "SystematicPlanService",
]
