from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.core.plans.models import (
    PlanExecutionLogRecord,
    PlanIdempotencyRecord,
    SystematicPlanRecord,
)
from src.infrastructure.plans import InMemorySystematicPlanRepository

_BASE = datetime(2026, 10, 19, 4, 30, tzinfo=timezone.utc)


def _plan(plan_id: str, *, minutes: int = 0, **overrides) -> SystematicPlanRecord:
    payload = {
        "plan_id": plan_id,
        "plan_type": "SIP",
        "client_id": "client_001",
        "product_id": "MF_EQ_001",
        "amount": Decimal("10000"),
        "frequency": "Monthly",
        "start_date": date(2026, 11, 5),
        "installments": 12,
        "next_execution_date": date(2026, 11, 5),
        "schedule_anchor_date": date(2026, 11, 5),
        "created_by": "rm_101",
        "created_at": _BASE + timedelta(minutes=minutes),
        "updated_at": _BASE + timedelta(minutes=minutes),
    }
    payload.update(overrides)
    return SystematicPlanRecord.model_validate(payload)


def _list(repository, **filters):
    arguments = {
        "plan_type": None,
        "status": None,
        "product_id": None,
        "client_id": None,
        "created_from": None,
        "created_to": None,
        "next_execution_from": None,
        "next_execution_to": None,
        "plan_id_query": None,
        "limit": 50,
        "cursor": None,
    }
    arguments.update(filters)
    return repository.list_plans(**arguments)


def test_create_with_idempotency_and_reject_duplicate_plan_id():
    repository = InMemorySystematicPlanRepository()
    plan = _plan("SIP-20261019-AAAAA")
    repository.create_plan(
        plan,
        idempotency=PlanIdempotencyRecord(
            idempotency_key="idem-1",
            request_hash="sha256:abc",
            plan_id=plan.plan_id,
            created_at=_BASE,
        ),
    )

    assert repository.get_idempotency(idempotency_key="idem-1").plan_id == plan.plan_id
    assert repository.get_idempotency(idempotency_key="idem-missing") is None
    with pytest.raises(RuntimeError, match="PLAN_ALREADY_EXISTS"):
        repository.create_plan(plan)


def test_returned_records_are_copies():
    repository = InMemorySystematicPlanRepository()
    repository.create_plan(_plan("SIP-20261019-AAAAA"))

    loaded = repository.get_plan(plan_id="SIP-20261019-AAAAA")
    loaded.amount = Decimal("1")

    assert repository.get_plan(plan_id="SIP-20261019-AAAAA").amount == Decimal("10000")


def test_update_requires_expected_revision():
    repository = InMemorySystematicPlanRepository()
    repository.create_plan(_plan("SIP-20261019-AAAAA"))
    plan = repository.get_plan(plan_id="SIP-20261019-AAAAA")
    plan.revision = 2
    plan.retry_count = 1

    assert repository.update_plan(plan, expected_revision=1) is True
    assert repository.update_plan(plan, expected_revision=1) is False
    assert repository.get_plan(plan_id="SIP-20261019-AAAAA").retry_count == 1


def test_list_filters_and_cursor_pagination():
    repository = InMemorySystematicPlanRepository()
    repository.create_plan(_plan("SIP-20261019-AAAAA", minutes=0))
    repository.create_plan(
        _plan(
            "STP-20261019-BBBBB",
            minutes=1,
            plan_type="STP",
            source_product_id="MF_DEBT_002",
        )
    )
    repository.create_plan(
        _plan("SWP-20261019-CCCCC", minutes=2, plan_type="SWP", status="CANCELLED")
    )

    first_page, cursor = _list(repository, limit=2)
    second_page, last_cursor = _list(repository, limit=2, cursor=cursor)

    assert [row.plan_id for row in first_page] == ["SWP-20261019-CCCCC", "STP-20261019-BBBBB"]
    assert cursor == "STP-20261019-BBBBB"
    assert [row.plan_id for row in second_page] == ["SIP-20261019-AAAAA"]
    assert last_cursor is None
    active, _ = _list(repository, status="ACTIVE")
    assert [row.plan_id for row in active] == ["STP-20261019-BBBBB", "SIP-20261019-AAAAA"]
    by_source, _ = _list(repository, product_id="MF_DEBT_002")
    assert [row.plan_id for row in by_source] == ["STP-20261019-BBBBB"]
    by_query, _ = _list(repository, plan_id_query="swp-2026")
    assert [row.plan_id for row in by_query] == ["SWP-20261019-CCCCC"]
    created_window, _ = _list(
        repository,
        created_from=_BASE + timedelta(minutes=1),
        created_to=_BASE + timedelta(minutes=1),
    )
    assert [row.plan_id for row in created_window] == ["STP-20261019-BBBBB"]
    assert _list(repository, cursor="unknown") == ([], None)


def test_due_selection_includes_overdue_active_plans_only():
    repository = InMemorySystematicPlanRepository()
    repository.create_plan(_plan("SIP-A", next_execution_date=date(2026, 11, 7)))
    repository.create_plan(_plan("SIP-B", next_execution_date=date(2026, 11, 9)))
    repository.create_plan(_plan("SIP-C", next_execution_date=date(2026, 11, 10)))
    repository.create_plan(
        _plan("SIP-D", next_execution_date=date(2026, 11, 9), status="FAILED")
    )
    repository.create_plan(
        _plan("SIP-E", next_execution_date=None, status="COMPLETED", installments_executed=12)
    )

    due = repository.list_due_plans(business_date=date(2026, 11, 9))

    assert [plan.plan_id for plan in due] == ["SIP-A", "SIP-B"]


def test_execution_logs_are_ordered_and_filtered():
    repository = InMemorySystematicPlanRepository()
    for log_id, plan_id, attempt_no, outcome in (
        ("pel_3", "SIP-B", 1, "EXECUTED"),
        ("pel_2", "SIP-A", 2, "FAILED"),
        ("pel_1", "SIP-A", 1, "RETRYING"),
    ):
        repository.append_execution_log(
            PlanExecutionLogRecord(
                log_id=log_id,
                plan_id=plan_id,
                business_date=date(2026, 11, 5),
                attempt_no=attempt_no,
                attempted_at=_BASE,
                outcome=outcome,
            )
        )

    rows, cursor = repository.list_execution_logs(
        plan_id=None,
        business_date_from=None,
        business_date_to=None,
        outcome=None,
        limit=2,
        cursor=None,
    )
    failed, _ = repository.list_execution_logs(
        plan_id="SIP-A",
        business_date_from=date(2026, 11, 5),
        business_date_to=date(2026, 11, 5),
        outcome="FAILED",
        limit=10,
        cursor=None,
    )

    assert [row.log_id for row in rows] == ["pel_1", "pel_2"]
    assert cursor == "pel_2"
    assert [row.log_id for row in failed] == ["pel_2"]
