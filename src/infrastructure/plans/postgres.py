import json
from contextlib import closing
from datetime import date, datetime, timezone
from decimal import Decimal
from importlib.util import find_spec
from typing import Any, Optional

from src.core.plans.models import (
    PlanExecutionLogRecord,
    PlanIdempotencyRecord,
    SystematicPlanRecord,
)
from src.core.validation.models import Nominee
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_PLAN_COLUMNS = """
                plan_id,
                plan_type,
                client_id,
                product_id,
                source_product_id,
                amount,
                frequency,
                start_date,
                installments,
                installments_executed,
                next_execution_date,
                last_execution_date,
                schedule_anchor_date,
                schedule_anchor_installment,
                status,
                retry_count,
                nominees_json,
                opt_out_of_nomination,
                euin,
                created_by,
                created_at,
                updated_at,
                cancelled_at,
                cancellation_reason,
                failure_reason,
                revision
"""

_LOG_COLUMNS = """
                log_id,
                plan_id,
                business_date,
                attempt_no,
                attempted_at,
                outcome,
                reason,
                order_id,
                errors_json
"""


class PostgresSystematicPlanRepository:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("PLAN_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("PLAN_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def get_idempotency(self, *, idempotency_key: str) -> Optional[PlanIdempotencyRecord]:
        query = """
            SELECT
                idempotency_key,
                request_hash,
                plan_id,
                created_at
            FROM systematic_plan_idempotency
            WHERE idempotency_key = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (idempotency_key,)).fetchone()
        if row is None:
            return None
        return PlanIdempotencyRecord(
            idempotency_key=row["idempotency_key"],
            request_hash=row["request_hash"],
            plan_id=row["plan_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create_plan(
        self,
        plan: SystematicPlanRecord,
        *,
        idempotency: Optional[PlanIdempotencyRecord] = None,
    ) -> None:
        query = f"""
            INSERT INTO systematic_plans ({_PLAN_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with closing(self._connect()) as connection:
            try:
                connection.execute(query, _plan_params(plan))
                if idempotency is not None:
                    connection.execute(
                        """
                        INSERT INTO systematic_plan_idempotency (
                            idempotency_key,
                            request_hash,
                            plan_id,
                            created_at
                        ) VALUES (%s, %s, %s, %s)
                        """,
                        (
                            idempotency.idempotency_key,
                            idempotency.request_hash,
                            idempotency.plan_id,
                            _to_utc_iso(idempotency.created_at),
                        ),
                    )
                connection.commit()
            except Exception:
                connection.rollback()
                raise

    def get_plan(self, *, plan_id: str) -> Optional[SystematicPlanRecord]:
        query = f"""
            SELECT {_PLAN_COLUMNS}
            FROM systematic_plans
            WHERE plan_id = %s
        """
        with closing(self._connect()) as connection:
            row = connection.execute(query, (plan_id,)).fetchone()
        return _to_plan(row)

    def update_plan(self, plan: SystematicPlanRecord, *, expected_revision: int) -> bool:
        query = """
            UPDATE systematic_plans SET
                amount = %s,
                frequency = %s,
                installments = %s,
                installments_executed = %s,
                next_execution_date = %s,
                last_execution_date = %s,
                schedule_anchor_date = %s,
                schedule_anchor_installment = %s,
                status = %s,
                retry_count = %s,
                nominees_json = %s,
                opt_out_of_nomination = %s,
                euin = %s,
                updated_at = %s,
                cancelled_at = %s,
                cancellation_reason = %s,
                failure_reason = %s,
                revision = %s
            WHERE plan_id = %s AND revision = %s
        """
        with closing(self._connect()) as connection:
            cursor = connection.execute(
                query,
                (
                    str(plan.amount),
                    plan.frequency,
                    plan.installments,
                    plan.installments_executed,
                    _optional_iso(plan.next_execution_date),
                    _optional_iso(plan.last_execution_date),
                    plan.schedule_anchor_date.isoformat(),
                    plan.schedule_anchor_installment,
                    plan.status,
                    plan.retry_count,
                    _nominees_json(plan.nominees),
                    plan.opt_out_of_nomination,
                    plan.euin,
                    _to_utc_iso(plan.updated_at),
                    _optional_utc_iso(plan.cancelled_at),
                    plan.cancellation_reason,
                    plan.failure_reason,
                    plan.revision,
                    plan.plan_id,
                    expected_revision,
                ),
            )
            updated = cursor.rowcount == 1
            connection.commit()
        return updated

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
        where_clauses = []
        args: list[str] = []
        if plan_type is not None:
            where_clauses.append("plan_type = %s")
            args.append(plan_type)
        if status is not None:
            where_clauses.append("status = %s")
            args.append(status)
        if product_id is not None:
            where_clauses.append("(product_id = %s OR source_product_id = %s)")
            args.extend([product_id, product_id])
        if client_id is not None:
            where_clauses.append("client_id = %s")
            args.append(client_id)
        if created_from is not None:
            where_clauses.append("created_at >= %s")
            args.append(_to_utc_iso(created_from))
        if created_to is not None:
            where_clauses.append("created_at <= %s")
            args.append(_to_utc_iso(created_to))
        if next_execution_from is not None:
            where_clauses.append("next_execution_date >= %s")
            args.append(next_execution_from.isoformat())
        if next_execution_to is not None:
            where_clauses.append("next_execution_date <= %s")
            args.append(next_execution_to.isoformat())
        if plan_id_query:
            where_clauses.append("plan_id ILIKE %s")
            args.append(f"%{plan_id_query}%")
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        query = f"""
            SELECT {_PLAN_COLUMNS}
            FROM systematic_plans
            {where_sql}
            ORDER BY created_at DESC, plan_id DESC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        plans = [plan for plan in (_to_plan(row) for row in rows) if plan is not None]
        return _page(plans, key=lambda plan: plan.plan_id, limit=limit, cursor=cursor)

    def list_due_plans(self, *, business_date: date) -> list[SystematicPlanRecord]:
        query = f"""
            SELECT {_PLAN_COLUMNS}
            FROM systematic_plans
            WHERE status = 'ACTIVE' AND next_execution_date <= %s
            ORDER BY next_execution_date ASC, plan_id ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, (business_date.isoformat(),)).fetchall()
        return [plan for plan in (_to_plan(row) for row in rows) if plan is not None]

    def append_execution_log(self, entry: PlanExecutionLogRecord) -> None:
        query = f"""
            INSERT INTO systematic_plan_execution_logs ({_LOG_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with closing(self._connect()) as connection:
            connection.execute(
                query,
                (
                    entry.log_id,
                    entry.plan_id,
                    entry.business_date.isoformat(),
                    entry.attempt_no,
                    _to_utc_iso(entry.attempted_at),
                    entry.outcome,
                    entry.reason,
                    entry.order_id,
                    json.dumps(entry.errors),
                ),
            )
            connection.commit()

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
        where_clauses = []
        args: list[str] = []
        if plan_id is not None:
            where_clauses.append("plan_id = %s")
            args.append(plan_id)
        if business_date_from is not None:
            where_clauses.append("business_date >= %s")
            args.append(business_date_from.isoformat())
        if business_date_to is not None:
            where_clauses.append("business_date <= %s")
            args.append(business_date_to.isoformat())
        if outcome is not None:
            where_clauses.append("outcome = %s")
            args.append(outcome)
        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        query = f"""
            SELECT {_LOG_COLUMNS}
            FROM systematic_plan_execution_logs
            {where_sql}
            ORDER BY business_date ASC, plan_id ASC, attempt_no ASC, attempted_at ASC, log_id ASC
        """
        with closing(self._connect()) as connection:
            rows = connection.execute(query, tuple(args)).fetchall()
        entries = [_to_log(row) for row in rows]
        return _page(entries, key=lambda entry: entry.log_id, limit=limit, cursor=cursor)

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="systematic_plans")


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _page(rows: list, *, key, limit: int, cursor: Optional[str]):
    if cursor:
        cursor_index = next(
            (index for index, row in enumerate(rows) if key(row) == cursor),
            None,
        )
        if cursor_index is None:
            return [], None
        rows = rows[cursor_index + 1 :]
    page = rows[:limit]
    next_cursor = key(page[-1]) if len(rows) > limit else None
    return page, next_cursor


def _plan_params(plan: SystematicPlanRecord) -> tuple[Any, ...]:
    return (
        plan.plan_id,
        plan.plan_type,
        plan.client_id,
        plan.product_id,
        plan.source_product_id,
        str(plan.amount),
        plan.frequency,
        plan.start_date.isoformat(),
        plan.installments,
        plan.installments_executed,
        _optional_iso(plan.next_execution_date),
        _optional_iso(plan.last_execution_date),
        plan.schedule_anchor_date.isoformat(),
        plan.schedule_anchor_installment,
        plan.status,
        plan.retry_count,
        _nominees_json(plan.nominees),
        plan.opt_out_of_nomination,
        plan.euin,
        plan.created_by,
        _to_utc_iso(plan.created_at),
        _to_utc_iso(plan.updated_at),
        _optional_utc_iso(plan.cancelled_at),
        plan.cancellation_reason,
        plan.failure_reason,
        plan.revision,
    )


def _to_utc_iso(value: datetime) -> str:
    # Stored as text, so every timestamp shares one offset to keep range filters ordered.
    return value.astimezone(timezone.utc).isoformat()


def _optional_utc_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return _to_utc_iso(value)


def _optional_iso(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    return date.fromisoformat(value)


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _nominees_json(nominees: Optional[list[Nominee]]) -> Optional[str]:
    if nominees is None:
        return None
    return json.dumps(
        [nominee.model_dump(mode="json") for nominee in nominees],
        separators=(",", ":"),
        sort_keys=True,
    )


def _to_plan(row) -> Optional[SystematicPlanRecord]:
    if row is None:
        return None
    nominees_json = row["nominees_json"]
    return SystematicPlanRecord(
        plan_id=row["plan_id"],
        plan_type=row["plan_type"],
        client_id=row["client_id"],
        product_id=row["product_id"],
        source_product_id=row["source_product_id"],
        amount=Decimal(row["amount"]),
        frequency=row["frequency"],
        start_date=date.fromisoformat(row["start_date"]),
        installments=int(row["installments"]),
        installments_executed=int(row["installments_executed"]),
        next_execution_date=_optional_date(row["next_execution_date"]),
        last_execution_date=_optional_date(row["last_execution_date"]),
        schedule_anchor_date=date.fromisoformat(row["schedule_anchor_date"]),
        schedule_anchor_installment=int(row["schedule_anchor_installment"]),
        status=row["status"],
        retry_count=int(row["retry_count"]),
        nominees=(
            [Nominee.model_validate(item) for item in json.loads(nominees_json)]
            if nominees_json is not None
            else None
        ),
        opt_out_of_nomination=bool(row["opt_out_of_nomination"]),
        euin=row["euin"],
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        cancelled_at=_optional_datetime(row["cancelled_at"]),
        cancellation_reason=row["cancellation_reason"],
        failure_reason=row["failure_reason"],
        revision=int(row["revision"]),
    )


def _to_log(row) -> PlanExecutionLogRecord:
    return PlanExecutionLogRecord(
        log_id=row["log_id"],
        plan_id=row["plan_id"],
        business_date=date.fromisoformat(row["business_date"]),
        attempt_no=int(row["attempt_no"]),
        attempted_at=datetime.fromisoformat(row["attempted_at"]),
        outcome=row["outcome"],
        reason=row["reason"],
        order_id=row["order_id"],
        errors=json.loads(row["errors_json"]),
    )
