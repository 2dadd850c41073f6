import logging
import uuid
from datetime import date, datetime, timezone, tzinfo
from typing import List, Optional

from src.core.common.canonical import hash_model
from src.core.common.clock import Clock, SystemClock
from src.core.plans.collaborators import MarketValueSource, ProductCatalog
from src.core.plans.instructions import validate_installment
from src.core.plans.models import (
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
    SystematicPlanRecord,
)
from src.core.plans.repository import SystematicPlanRepository
from src.core.plans.schedule import generate_plan_id, installment_due_date

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {"COMPLETED", "CANCELLED", "FAILED"}

CANCELLATION_CONFIRMATION_REQUIRED = "CANCELLATION_CONFIRMATION_REQUIRED"


class PlanLifecycleError(Exception):
    pass


class PlanNotFoundError(PlanLifecycleError):
    pass


class PlanIdempotencyConflictError(PlanLifecycleError):
    pass


class PlanStateConflictError(PlanLifecycleError):
    pass


class SystematicPlanService:
    def __init__(
        self,
        *,
        repository: SystematicPlanRepository,
        product_catalog: ProductCatalog,
        market_values: MarketValueSource,
        clock: Optional[Clock] = None,
        business_timezone: tzinfo = timezone.utc,
        require_future_start_date: bool = True,
    ) -> None:
        self._repository = repository
        self._product_catalog = product_catalog
        self._market_values = market_values
        self._clock = clock or SystemClock()
        self._business_timezone = business_timezone
        self._require_future_start_date = require_future_start_date

    @property
    def product_catalog(self) -> ProductCatalog:
        return self._product_catalog

    @property
    def market_values(self) -> MarketValueSource:
        return self._market_values

    def business_date(self) -> date:
        return self._clock.now().astimezone(self._business_timezone).date()

    def create_plan(
        self,
        *,
        payload: PlanCreateRequest,
        idempotency_key: Optional[str],
    ) -> PlanMutationResponse:
        now = self._clock.now()
        today = now.astimezone(self._business_timezone).date()
        request_hash = hash_model(payload)

        if idempotency_key is not None:
            existing = self._repository.get_idempotency(idempotency_key=idempotency_key)
            if existing is not None:
                if existing.request_hash != request_hash:
                    raise PlanIdempotencyConflictError(
                        "IDEMPOTENCY_KEY_CONFLICT: request hash mismatch"
                    )
                replayed = self._repository.get_plan(plan_id=existing.plan_id)
                if replayed is None:
                    raise PlanNotFoundError("PLAN_IDEMPOTENCY_REFERENT_NOT_FOUND")
                return PlanMutationResponse(accepted=True, plan=self._to_summary(replayed))

        validation = validate_installment(
            payload.installment_terms(),
            product_catalog=self._product_catalog,
            market_values=self._market_values,
            as_of=today,
            plan_errors=self._plan_shape_errors(payload, today=today),
        )
        if not validation.is_valid:
            logger.info(
                "systematic plan rejected",
                extra={
                    "extra_fields": {
                        "plan_type": payload.plan_type,
                        "client_id": payload.client_id,
                        "error_count": len(validation.errors),
                    }
                },
            )
            return PlanMutationResponse(
                accepted=False, errors=validation.errors, warnings=validation.warnings
            )

        terms = payload.installment_terms()
        plan = SystematicPlanRecord(
            plan_id=generate_plan_id(payload.plan_type, today),
            plan_type=payload.plan_type,
            client_id=payload.client_id,
            product_id=terms.product_id,
            source_product_id=terms.source_product_id,
            amount=payload.amount,
            frequency=payload.frequency,
            start_date=payload.start_date,
            installments=payload.installments,
            installments_executed=0,
            next_execution_date=payload.start_date,
            schedule_anchor_date=payload.start_date,
            schedule_anchor_installment=0,
            status="ACTIVE",
            retry_count=0,
            nominees=payload.nominees,
            opt_out_of_nomination=payload.opt_out_of_nomination,
            euin=payload.euin,
            created_by=payload.created_by,
            created_at=now,
            updated_at=now,
        )
        idempotency = None
        if idempotency_key is not None:
            idempotency = PlanIdempotencyRecord(
                idempotency_key=idempotency_key,
                request_hash=request_hash,
                plan_id=plan.plan_id,
                created_at=now,
            )
        self._repository.create_plan(plan, idempotency=idempotency)
        logger.info(
            "systematic plan created",
            extra={
                "extra_fields": {
                    "plan_id": plan.plan_id,
                    "plan_type": plan.plan_type,
                    "next_execution_date": plan.start_date.isoformat(),
                }
            },
        )
        return PlanMutationResponse(
            accepted=True, plan=self._to_summary(plan), warnings=validation.warnings
        )

    def modify_plan(self, *, plan_id: str, payload: PlanModifyRequest) -> PlanMutationResponse:
        plan = self._require_plan(plan_id)
        if plan.status != "ACTIVE":
            raise PlanStateConflictError(f"STATE_CONFLICT: plan is {plan.status}")
        today = self.business_date()
        if plan.next_execution_date is not None and plan.next_execution_date <= today:
            raise PlanStateConflictError("STATE_CONFLICT: plan is due for execution today")

        expected_revision = plan.revision
        plan_errors: List[str] = []
        if payload.installments is not None and payload.installments <= plan.installments_executed:
            plan_errors.append(
                "Installments must be greater than the "
                f"{plan.installments_executed} installments already executed"
            )

        if payload.frequency is not None and payload.frequency != plan.frequency:
            # Re-anchor so the pending due date stays and later dates follow the new step.
            plan.schedule_anchor_date = plan.next_execution_date or plan.start_date
            plan.schedule_anchor_installment = plan.installments_executed
            plan.frequency = payload.frequency
        if payload.amount is not None:
            plan.amount = payload.amount
        if payload.installments is not None:
            plan.installments = payload.installments
        if payload.nominees is not None:
            plan.nominees = payload.nominees
        if payload.opt_out_of_nomination is not None:
            plan.opt_out_of_nomination = payload.opt_out_of_nomination
        if payload.euin is not None:
            plan.euin = payload.euin

        validation = validate_installment(
            plan.installment_terms(),
            product_catalog=self._product_catalog,
            market_values=self._market_values,
            as_of=today,
            plan_errors=plan_errors,
        )
        if not validation.is_valid:
            return PlanMutationResponse(
                accepted=False, errors=validation.errors, warnings=validation.warnings
            )

        self._commit(plan, expected_revision=expected_revision)
        logger.info(
            "systematic plan modified",
            extra={"extra_fields": {"plan_id": plan_id, "actor_id": payload.actor_id}},
        )
        return PlanMutationResponse(
            accepted=True, plan=self._to_summary(plan), warnings=validation.warnings
        )

    def cancel_plan(self, *, plan_id: str, payload: PlanCancelRequest) -> PlanMutationResponse:
        plan = self._require_plan(plan_id)
        if plan.status in TERMINAL_STATUSES:
            raise PlanStateConflictError(f"STATE_CONFLICT: plan is {plan.status}")
        if not payload.confirm:
            return PlanMutationResponse(
                accepted=False, errors=[CANCELLATION_CONFIRMATION_REQUIRED]
            )

        expected_revision = plan.revision
        plan.status = "CANCELLED"
        plan.cancelled_at = self._clock.now()
        plan.cancellation_reason = payload.reason
        plan.retry_count = 0
        self._commit(plan, expected_revision=expected_revision)
        logger.info(
            "systematic plan cancelled",
            extra={"extra_fields": {"plan_id": plan_id, "actor_id": payload.actor_id}},
        )
        return PlanMutationResponse(accepted=True, plan=self._to_summary(plan))

    def record_execution_outcome(
        self, *, plan_id: str, outcome: PlanExecutionOutcome
    ) -> PlanSummary:
        plan = self._require_plan(plan_id)
        if plan.status != "ACTIVE":
            raise PlanStateConflictError(f"STATE_CONFLICT: plan is {plan.status}")
        if plan.next_execution_date != outcome.due_date:
            raise PlanStateConflictError("STATE_CONFLICT: plan is not due on due_date")

        expected_revision = plan.revision
        if outcome.outcome_type == "EXECUTED":
            plan.installments_executed += 1
            plan.last_execution_date = outcome.due_date
            plan.retry_count = 0
            plan.failure_reason = None
            if plan.installments_executed >= plan.installments:
                plan.status = "COMPLETED"
                plan.next_execution_date = None
            else:
                plan.next_execution_date = installment_due_date(
                    anchor_date=plan.schedule_anchor_date,
                    frequency=plan.frequency,
                    steps=plan.installments_executed - plan.schedule_anchor_installment,
                )
        elif outcome.outcome_type == "RETRY_SCHEDULED":
            plan.retry_count += 1
            plan.failure_reason = outcome.reason
        else:
            plan.status = "FAILED"
            plan.failure_reason = outcome.reason

        self._commit(plan, expected_revision=expected_revision)
        logger.info(
            "systematic plan execution outcome recorded",
            extra={
                "extra_fields": {
                    "plan_id": plan_id,
                    "outcome_type": outcome.outcome_type,
                    "status": plan.status,
                    "installments_executed": plan.installments_executed,
                }
            },
        )
        return self._to_summary(plan)

    def append_execution_log(self, entry: PlanExecutionLogRecord) -> None:
        self._repository.append_execution_log(entry)

    def get_plan(self, *, plan_id: str) -> PlanSummary:
        return self._to_summary(self._require_plan(plan_id))

    def get_plan_record(self, *, plan_id: str) -> Optional[SystematicPlanRecord]:
        return self._repository.get_plan(plan_id=plan_id)

    def list_plans(
        self,
        *,
        plan_type: Optional[str] = None,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        client_id: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        next_execution_from: Optional[date] = None,
        next_execution_to: Optional[date] = None,
        plan_id_query: Optional[str] = None,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> PlanListResponse:
        rows, next_cursor = self._repository.list_plans(
            plan_type=plan_type,
            status=status,
            product_id=product_id,
            client_id=client_id,
            created_from=created_from,
            created_to=created_to,
            next_execution_from=next_execution_from,
            next_execution_to=next_execution_to,
            plan_id_query=plan_id_query,
            limit=limit,
            cursor=cursor,
        )
        return PlanListResponse(
            items=[self._to_summary(row) for row in rows], next_cursor=next_cursor
        )

    def list_due_plans(self, *, business_date: date) -> list[SystematicPlanRecord]:
        return self._repository.list_due_plans(business_date=business_date)

    def get_execution_log(self, *, plan_id: str) -> PlanExecutionLogResponse:
        self._require_plan(plan_id)
        items: list[PlanExecutionLogEntry] = []
        cursor: Optional[str] = None
        while True:
            rows, cursor = self._repository.list_execution_logs(
                plan_id=plan_id,
                business_date_from=None,
                business_date_to=None,
                outcome=None,
                limit=500,
                cursor=cursor,
            )
            items.extend(self._to_log_entry(row) for row in rows)
            if cursor is None:
                break
        return PlanExecutionLogResponse(items=items)

    def list_execution_logs(
        self,
        *,
        plan_id: Optional[str] = None,
        business_date_from: Optional[date] = None,
        business_date_to: Optional[date] = None,
        outcome: Optional[str] = None,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> PlanExecutionLogResponse:
        rows, next_cursor = self._repository.list_execution_logs(
            plan_id=plan_id,
            business_date_from=business_date_from,
            business_date_to=business_date_to,
            outcome=outcome,
            limit=limit,
            cursor=cursor,
        )
        return PlanExecutionLogResponse(
            items=[self._to_log_entry(row) for row in rows], next_cursor=next_cursor
        )

    def _require_plan(self, plan_id: str) -> SystematicPlanRecord:
        plan = self._repository.get_plan(plan_id=plan_id)
        if plan is None:
            raise PlanNotFoundError("PLAN_NOT_FOUND")
        return plan

    def _commit(self, plan: SystematicPlanRecord, *, expected_revision: int) -> None:
        plan.revision = expected_revision + 1
        plan.updated_at = self._clock.now()
        if not self._repository.update_plan(plan, expected_revision=expected_revision):
            raise PlanStateConflictError("STATE_CONFLICT: plan was modified concurrently")

    def _plan_shape_errors(self, payload: PlanCreateRequest, *, today: date) -> List[str]:
        errors: List[str] = []
        if self._require_future_start_date and payload.start_date <= today:
            errors.append("Start date must be a future date")
        if payload.plan_type == "STP" and payload.source_product_id == payload.target_product_id:
            errors.append("Source and target products must be different")
        return errors

    def _to_summary(self, plan: SystematicPlanRecord) -> PlanSummary:
        return PlanSummary(
            plan_id=plan.plan_id,
            plan_type=plan.plan_type,
            client_id=plan.client_id,
            product_id=plan.product_id,
            source_product_id=plan.source_product_id,
            amount=plan.amount,
            frequency=plan.frequency,
            start_date=plan.start_date.isoformat(),
            installments=plan.installments,
            installments_executed=plan.installments_executed,
            next_execution_date=_iso_or_none(plan.next_execution_date),
            last_execution_date=_iso_or_none(plan.last_execution_date),
            status=plan.status,
            retry_count=plan.retry_count,
            created_by=plan.created_by,
            created_at=plan.created_at.isoformat(),
            updated_at=plan.updated_at.isoformat(),
            cancelled_at=_iso_or_none(plan.cancelled_at),
            cancellation_reason=plan.cancellation_reason,
            failure_reason=plan.failure_reason,
        )

    def _to_log_entry(self, entry: PlanExecutionLogRecord) -> PlanExecutionLogEntry:
        return PlanExecutionLogEntry(
            log_id=entry.log_id,
            plan_id=entry.plan_id,
            business_date=entry.business_date.isoformat(),
            attempt_no=entry.attempt_no,
            attempted_at=entry.attempted_at.isoformat(),
            outcome=entry.outcome,
            reason=entry.reason,
            order_id=entry.order_id,
            errors=list(entry.errors),
        )


def new_execution_log_id() -> str:
    return f"pel_{uuid.uuid4().hex[:12]}"


def _iso_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
