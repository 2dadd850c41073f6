from copy import deepcopy
from datetime import date, datetime
from threading import Lock
from typing import Optional, TypeVar

from src.core.plans.models import (
    PlanExecutionLogRecord,
    PlanIdempotencyRecord,
    SystematicPlanRecord,
)
from src.core.plans.repository import SystematicPlanRepository

RowT = TypeVar("RowT")


class InMemorySystematicPlanRepository(SystematicPlanRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._plans: dict[str, SystematicPlanRecord] = {}
        self._logs: list[PlanExecutionLogRecord] = []
        self._idempotency: dict[str, PlanIdempotencyRecord] = {}

    def get_idempotency(self, *, idempotency_key: str) -> Optional[PlanIdempotencyRecord]:
        with self._lock:
            record = self._idempotency.get(idempotency_key)
            return deepcopy(record) if record is not None else None

    def create_plan(
        self,
        plan: SystematicPlanRecord,
        *,
        idempotency: Optional[PlanIdempotencyRecord] = None,
    ) -> None:
        with self._lock:
            if plan.plan_id in self._plans:
                raise RuntimeError(f"PLAN_ALREADY_EXISTS:{plan.plan_id}")
            self._plans[plan.plan_id] = deepcopy(plan)
            if idempotency is not None:
                self._idempotency[idempotency.idempotency_key] = deepcopy(idempotency)

    def get_plan(self, *, plan_id: str) -> Optional[SystematicPlanRecord]:
        with self._lock:
            plan = self._plans.get(plan_id)
            return deepcopy(plan) if plan is not None else None

    def update_plan(self, plan: SystematicPlanRecord, *, expected_revision: int) -> bool:
        with self._lock:
            current = self._plans.get(plan.plan_id)
            if current is None or current.revision != expected_revision:
                return False
            self._plans[plan.plan_id] = deepcopy(plan)
            return True

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
    ) -> tuple[list[SystematicPlanRecord], Optional[str]]:
        with self._lock:
            rows = list(self._plans.values())

        rows = sorted(rows, key=lambda x: (x.created_at, x.plan_id), reverse=True)

        if plan_type is not None:
            rows = [row for row in rows if row.plan_type == plan_type]
        if status is not None:
            rows = [row for row in rows if row.status == status]
        if product_id is not None:
            rows = [
                row
                for row in rows
                if product_id in (row.product_id, row.source_product_id)
            ]
        if client_id is not None:
            rows = [row for row in rows if row.client_id == client_id]
        if created_from is not None:
            rows = [row for row in rows if row.created_at >= created_from]
        if created_to is not None:
            rows = [row for row in rows if row.created_at <= created_to]
        if next_execution_from is not None:
            rows = [
                row
                for row in rows
                if row.next_execution_date is not None
                and row.next_execution_date >= next_execution_from
            ]
        if next_execution_to is not None:
            rows = [
                row
                for row in rows
                if row.next_execution_date is not None
                and row.next_execution_date <= next_execution_to
            ]
        if plan_id_query:
            needle = plan_id_query.upper()
            rows = [row for row in rows if needle in row.plan_id.upper()]

        return _page(rows, key=lambda row: row.plan_id, limit=limit, cursor=cursor)

    def list_due_plans(self, *, business_date: date) -> list[SystematicPlanRecord]:
        with self._lock:
            rows = [
                deepcopy(plan)
                for plan in self._plans.values()
                if plan.status == "ACTIVE"
                and plan.next_execution_date is not None
                and plan.next_execution_date <= business_date
            ]
        return sorted(rows, key=lambda x: (x.next_execution_date, x.plan_id))

    def append_execution_log(self, entry: PlanExecutionLogRecord) -> None:
        with self._lock:
            self._logs.append(deepcopy(entry))

    def list_execution_logs(
        self,
        *,
        plan_id: Optional[str],
        business_date_from: Optional[date],
        business_date_to: Optional[date],
        outcome: Optional[str],
        limit: int,
        cursor: Optional[str],
    ) -> tuple[list[PlanExecutionLogRecord], Optional[str]]:
        with self._lock:
            rows = list(self._logs)

        rows = sorted(
            rows,
            key=lambda x: (x.business_date, x.plan_id, x.attempt_no, x.attempted_at, x.log_id),
        )
        if plan_id is not None:
            rows = [row for row in rows if row.plan_id == plan_id]
        if business_date_from is not None:
            rows = [row for row in rows if row.business_date >= business_date_from]
        if business_date_to is not None:
            rows = [row for row in rows if row.business_date <= business_date_to]
        if outcome is not None:
            rows = [row for row in rows if row.outcome == outcome]

        return _page(rows, key=lambda row: row.log_id, limit=limit, cursor=cursor)


def _page(rows: list[RowT], *, key, limit: int, cursor: Optional[str]):
    if cursor:
        row_ids = [key(row) for row in rows]
        if cursor not in row_ids:
            return [], None
        rows = rows[row_ids.index(cursor) + 1 :]
    page = rows[:limit]
    next_cursor = key(page[-1]) if len(rows) > limit else None
    return [deepcopy(row) for row in page], next_cursor
