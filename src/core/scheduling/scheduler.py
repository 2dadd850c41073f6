"""
FILE: src/core/scheduling/scheduler.py
Daily execution of due systematic plans with bounded retries before the cut-off.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextvars import copy_context
from datetime import date, datetime, timedelta
from threading import Event
from typing import Iterator, List, Literal, Optional

from pydantic import BaseModel, Field

from src.core.common.clock import Clock, SystemClock, business_date
from src.core.common.log_context import bound_log_context
from src.core.plans.collaborators import OrderBook
from src.core.plans.instructions import build_installment_instruction, validate_installment
from src.core.plans.models import (
    PlanExecutionLogRecord,
    PlanExecutionOutcome,
    PlanOutcomeType,
    SystematicPlanRecord,
)
from src.core.plans.schedule import next_weekday
from src.core.plans.service import (
    PlanStateConflictError,
    SystematicPlanService,
    new_execution_log_id,
)
from src.core.scheduling.policy import RetryPolicy

logger = logging.getLogger(__name__)

PlanAttemptResult = Literal["EXECUTED", "RETRYING", "FAILED", "SKIPPED"]

CUTOFF_PASSED = "CUTOFF_PASSED"
VALIDATION_FAILED = "VALIDATION_FAILED"
ORDER_REJECTED = "ORDER_REJECTED"


class SchedulerRunReport(BaseModel):
    business_date: date = Field(description="Business date processed.", examples=["2026-11-05"])
    plans_due: int = Field(default=0, description="Plans selected as due.", examples=[4])
    executed: int = Field(default=0, description="Plans executed.", examples=[3])
    failed: int = Field(default=0, description="Plans moved to FAILED.", examples=[1])
    skipped: int = Field(
        default=0,
        description="Plans no longer active or due when their attempt came up.",
        examples=[0],
    )
    interrupted: bool = Field(
        default=False,
        description="True when a stop request ended the day before every plan settled.",
        examples=[False],
    )


class ExecutionScheduler:
    """
    Runs one business day as a sequence of attempt rounds.

    Each round waits for its slot, then fans the still-pending plans out to a bounded worker
    pool. A plan is re-read before every attempt, so a cancellation between rounds takes
    effect immediately. Plans still pending when no slot before the cut-off remains are
    exhausted.
    """

    def __init__(
        self,
        *,
        service: SystematicPlanService,
        order_book: OrderBook,
        policy: Optional[RetryPolicy] = None,
        clock: Optional[Clock] = None,
        max_workers: int = 8,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._service = service
        self._order_book = order_book
        self._policy = policy or RetryPolicy()
        self._clock = clock or SystemClock()
        self._max_workers = max_workers

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def run_business_day(self, run_date: Optional[date] = None) -> SchedulerRunReport:
        run_date = run_date or business_date(self._clock, self._policy.tz)
        run_id = f"plan-run_{run_date:%Y%m%d}_{uuid.uuid4().hex[:8]}"
        with bound_log_context(correlation_id=run_id):
            return self._run_day(run_date)

    def _run_day(self, run_date: date) -> SchedulerRunReport:
        due_plans = self._service.list_due_plans(business_date=run_date)
        report = SchedulerRunReport(business_date=run_date, plans_due=len(due_plans))
        logger.info(
            "scheduler business day started",
            extra={
                "extra_fields": {
                    "business_date": run_date.isoformat(),
                    "plans_due": len(due_plans),
                }
            },
        )
        if not due_plans:
            return report

        # Due date each plan is settling; overdue plans keep their original date.
        pending = {plan.plan_id: plan.next_execution_date for plan in due_plans}
        cutoff_at = self._policy.cutoff_at(run_date)
        slots = self._live_slots(self._policy.attempt_times(run_date))

        for index, slot in enumerate(slots):
            if not pending:
                break
            if not self._clock.wait_until(slot):
                report.interrupted = True
                break
            if self._clock.now() >= cutoff_at:
                break
            has_later_slot = any(
                later > self._clock.now() for later in slots[index + 1 :]
            )
            results = self._run_round(
                pending=pending,
                run_date=run_date,
                has_later_slot=has_later_slot,
            )
            for plan_id, result in results.items():
                if result == "RETRYING":
                    continue
                pending.pop(plan_id)
                _tally(report, result)

        if pending and not report.interrupted:
            for plan_id, due_date in pending.items():
                _tally(report, self._exhaust_at_cutoff(plan_id, due_date))

        logger.info(
            "scheduler business day finished",
            extra={"extra_fields": report.model_dump(mode="json")},
        )
        return report

    def iter_business_days(self, stop_event: Event) -> Iterator[SchedulerRunReport]:
        """Yield one report per business day until ``stop_event`` is set; weekends are skipped."""
        last_run: Optional[date] = None
        while not stop_event.is_set():
            run_date = self._next_run_date(last_run)
            if not self._clock.wait_until(self._policy.day_start_at(run_date)):
                return
            if stop_event.is_set():
                return
            last_run = run_date
            try:
                report = self.run_business_day(run_date)
            except Exception:
                # Unsettled plans stay overdue and are picked up on the next business day.
                logger.exception(
                    "scheduler business day aborted",
                    extra={"extra_fields": {"business_date": run_date.isoformat()}},
                )
                continue
            yield report

    def run_forever(self, stop_event: Event) -> None:
        for report in self.iter_business_days(stop_event):
            logger.info(
                "scheduler report",
                extra={"extra_fields": report.model_dump(mode="json")},
            )

    def _next_run_date(self, last_run: Optional[date]) -> date:
        now = self._clock.now()
        today = now.astimezone(self._policy.tz).date()
        candidate = next_weekday(today)
        if candidate == today and now >= self._policy.cutoff_at(today):
            candidate = next_weekday(today + timedelta(days=1))
        if last_run is not None and candidate <= last_run:
            candidate = next_weekday(last_run + timedelta(days=1))
        return candidate

    def _live_slots(self, slots: List[datetime]) -> List[datetime]:
        # A late start keeps only the latest slot already passed plus everything after it.
        now = self._clock.now()
        return [
            slot
            for index, slot in enumerate(slots)
            if index == len(slots) - 1 or slots[index + 1] > now
        ]

    def _run_round(
        self,
        *,
        pending: dict[str, date],
        run_date: date,
        has_later_slot: bool,
    ) -> dict[str, PlanAttemptResult]:
        results: dict[str, PlanAttemptResult] = {}
        workers = min(self._max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="plan-scheduler") as pool:
            futures = {
                pool.submit(
                    copy_context().run,
                    self._attempt_plan,
                    plan_id=plan_id,
                    due_date=due_date,
                    run_date=run_date,
                    has_later_slot=has_later_slot,
                ): plan_id
                for plan_id, due_date in pending.items()
            }
            for future in as_completed(futures):
                plan_id = futures[future]
                try:
                    results[plan_id] = future.result()
                except Exception:
                    logger.exception(
                        "scheduler attempt crashed",
                        extra={"extra_fields": {"plan_id": plan_id}},
                    )
                    # Stays pending; the cut-off exhausts it if no later round settles it.
                    results[plan_id] = "RETRYING"
        return results

    def _attempt_plan(
        self,
        *,
        plan_id: str,
        due_date: date,
        run_date: date,
        has_later_slot: bool,
    ) -> PlanAttemptResult:
        attempted_at = self._clock.now()
        try:
            return self._execute_attempt(
                plan_id=plan_id,
                due_date=due_date,
                run_date=run_date,
                has_later_slot=has_later_slot,
                attempted_at=attempted_at,
            )
        except Exception as exc:
            logger.exception(
                "scheduler attempt raised",
                extra={"extra_fields": {"plan_id": plan_id, "due_date": due_date.isoformat()}},
            )
            return self._record_unexpected_failure(
                plan_id=plan_id,
                due_date=due_date,
                run_date=run_date,
                has_later_slot=has_later_slot,
                attempted_at=attempted_at,
                reason=f"UNEXPECTED_ERROR: {exc.__class__.__name__}",
            )

    def _execute_attempt(
        self,
        *,
        plan_id: str,
        due_date: date,
        run_date: date,
        has_later_slot: bool,
        attempted_at: datetime,
    ) -> PlanAttemptResult:
        plan = self._service.get_plan_record(plan_id=plan_id)
        if not _still_due(plan, due_date):
            logger.info(
                "scheduler skipped plan",
                extra={"extra_fields": {"plan_id": plan_id, "reason": "NOT_ACTIVE_OR_NOT_DUE"}},
            )
            return "SKIPPED"

        attempt_no = plan.retry_count + 1
        final = self._is_final(attempt_no, has_later_slot)
        terms = plan.installment_terms()
        validation = validate_installment(
            terms,
            product_catalog=self._service.product_catalog,
            market_values=self._service.market_values,
            as_of=run_date,
        )
        if not validation.is_valid:
            return self._record_failure(
                plan,
                run_date=run_date,
                attempt_no=attempt_no,
                attempted_at=attempted_at,
                final=final,
                reason=VALIDATION_FAILED,
                errors=validation.errors,
            )

        submission = self._order_book.submit_order(
            build_installment_instruction(terms),
            client_id=plan.client_id,
            plan_id=plan.plan_id,
            order_reference=installment_order_reference(plan.plan_id, due_date),
        )
        if not submission.success:
            return self._record_failure(
                plan,
                run_date=run_date,
                attempt_no=attempt_no,
                attempted_at=attempted_at,
                final=final,
                reason=submission.reason or ORDER_REJECTED,
                errors=[],
            )

        # The order is placed, so the outcome is recorded before any log bookkeeping.
        self._settle(
            plan.plan_id,
            PlanExecutionOutcome(
                outcome_type="EXECUTED", due_date=due_date, order_id=submission.order_id
            ),
        )
        try:
            self._service.append_execution_log(
                PlanExecutionLogRecord(
                    log_id=new_execution_log_id(),
                    plan_id=plan.plan_id,
                    business_date=run_date,
                    attempt_no=attempt_no,
                    attempted_at=attempted_at,
                    outcome="EXECUTED",
                    order_id=submission.order_id,
                )
            )
        except Exception:
            logger.exception(
                "scheduler execution log entry not written",
                extra={
                    "extra_fields": {
                        "plan_id": plan.plan_id,
                        "attempt_no": attempt_no,
                        "order_id": submission.order_id,
                    }
                },
            )
        return "EXECUTED"

    def _record_unexpected_failure(
        self,
        *,
        plan_id: str,
        due_date: date,
        run_date: date,
        has_later_slot: bool,
        attempted_at: datetime,
        reason: str,
    ) -> PlanAttemptResult:
        try:
            plan = self._service.get_plan_record(plan_id=plan_id)
            if not _still_due(plan, due_date):
                return "SKIPPED"
            attempt_no = plan.retry_count + 1
            return self._record_failure(
                plan,
                run_date=run_date,
                attempt_no=attempt_no,
                attempted_at=attempted_at,
                final=self._is_final(attempt_no, has_later_slot),
                reason=reason,
                errors=[],
            )
        except Exception:
            # Still pending: a later slot retries it and the cut-off exhausts it.
            logger.exception(
                "scheduler failure not recorded",
                extra={"extra_fields": {"plan_id": plan_id, "reason": reason}},
            )
            return "RETRYING"

    def _is_final(self, attempt_no: int, has_later_slot: bool) -> bool:
        return attempt_no >= self._policy.max_attempts or not has_later_slot

    def _record_failure(
        self,
        plan: SystematicPlanRecord,
        *,
        run_date: date,
        attempt_no: int,
        attempted_at: datetime,
        final: bool,
        reason: str,
        errors: List[str],
    ) -> PlanAttemptResult:
        self._service.append_execution_log(
            PlanExecutionLogRecord(
                log_id=new_execution_log_id(),
                plan_id=plan.plan_id,
                business_date=run_date,
                attempt_no=attempt_no,
                attempted_at=attempted_at,
                outcome="FAILED" if final else "RETRYING",
                reason=reason,
                errors=errors,
            )
        )
        outcome_type: PlanOutcomeType = "EXHAUSTED" if final else "RETRY_SCHEDULED"
        self._settle(
            plan.plan_id,
            PlanExecutionOutcome(
                outcome_type=outcome_type,
                due_date=plan.next_execution_date,
                reason=reason,
            ),
        )
        logger.warning(
            "scheduler attempt failed",
            extra={
                "extra_fields": {
                    "plan_id": plan.plan_id,
                    "attempt_no": attempt_no,
                    "final": final,
                    "reason": reason,
                }
            },
        )
        return "FAILED" if final else "RETRYING"

    def _exhaust_at_cutoff(self, plan_id: str, due_date: date) -> PlanAttemptResult:
        try:
            plan = self._service.get_plan_record(plan_id=plan_id)
            if not _still_due(plan, due_date):
                return "SKIPPED"
            self._settle(
                plan_id,
                PlanExecutionOutcome(
                    outcome_type="EXHAUSTED", due_date=due_date, reason=CUTOFF_PASSED
                ),
            )
        except Exception:
            # Left ACTIVE and overdue; the next business day selects it again.
            logger.exception(
                "scheduler cut-off exhaustion not recorded",
                extra={"extra_fields": {"plan_id": plan_id, "due_date": due_date.isoformat()}},
            )
            return "SKIPPED"
        return "FAILED"

    def _settle(self, plan_id: str, outcome: PlanExecutionOutcome) -> None:
        try:
            self._service.record_execution_outcome(plan_id=plan_id, outcome=outcome)
        except PlanStateConflictError as exc:
            # The plan changed under the attempt, e.g. cancelled while the order was in flight.
            logger.warning(
                "scheduler outcome not applied",
                extra={
                    "extra_fields": {
                        "plan_id": plan_id,
                        "outcome_type": outcome.outcome_type,
                        "detail": str(exc),
                    }
                },
            )


def _tally(report: SchedulerRunReport, result: PlanAttemptResult) -> None:
    if result == "EXECUTED":
        report.executed += 1
    elif result == "FAILED":
        report.failed += 1
    elif result == "SKIPPED":
        report.skipped += 1


def installment_order_reference(plan_id: str, due_date: date) -> str:
    return f"{plan_id}:{due_date.isoformat()}"


def _still_due(plan: Optional[SystematicPlanRecord], due_date: date) -> bool:
    return plan is not None and plan.status == "ACTIVE" and plan.next_execution_date == due_date
