from datetime import date, datetime
from typing import Optional, Protocol

from src.core.plans.models import (
    PlanExecutionLogRecord,
    PlanIdempotencyRecord,
    SystematicPlanRecord,
)


class SystematicPlanRepository(Protocol):
    def get_idempotency(self, *, idempotency_key: str) -> Optional[PlanIdempotencyRecord]: ...

    def create_plan(
        self,
        plan: SystematicPlanRecord,
        *,
        idempotency: Optional[PlanIdempotencyRecord] = None,
    ) -> None: ...

    def get_plan(self, *, plan_id: str) -> Optional[SystematicPlanRecord]: ...

    def update_plan(self, plan: SystematicPlanRecord, *, expected_revision: int) -> bool: ...

    def list_plans(
        self,
        *,
        plan_type: Optional[str],
        status: Optional[str],
        product_id: Optional[str],
        client_id: Optional[str],
        created_from: Optional[datetime],
        created_to: Optional[datetime],
        next_execution_from: Optional[date],
        next_execution_to: Optional[date],
        plan_id_query: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[SystematicPlanRecord], Optional[str]]: ...

    def list_due_plans(self, *, business_date: date) -> list[SystematicPlanRecord]: ...

    def append_execution_log(self, entry: PlanExecutionLogRecord) -> None: ...

    def list_execution_logs(
        self,
        *,
        plan_id: Optional[str],
        business_date_from: Optional[date],
        business_date_to: Optional[date],
        outcome: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[PlanExecutionLogRecord], Optional[str]]: ...
