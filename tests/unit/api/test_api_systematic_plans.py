import json
from datetime import date

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers import plans as plans_router
from src.api.routers.plans import reset_plan_service_for_tests
from tests.factories import at_ist

_CATALOG_JSON = json.dumps(
    {
        "MF_EQ_001": {"min_investment": "5000", "max_investment": "1000000"},
        "MF_DEBT_002": {"min_investment": "1000"},
    }
)
_MARKET_VALUES_JSON = json.dumps({"client_001": {"MF_DEBT_002": "200000"}})


@pytest.fixture(autouse=True)
def plan_api_runtime(monkeypatch, manual_clock):
    monkeypatch.setenv("PRODUCT_CATALOG_JSON", _CATALOG_JSON)
    monkeypatch.setenv("MARKET_VALUES_JSON", _MARKET_VALUES_JSON)
    reset_plan_service_for_tests(clock=manual_clock)


def _sip_payload(**overrides) -> dict:
    payload = {
        "plan_type": "SIP",
        "client_id": "client_001",
        "created_by": "rm_101",
        "product_id": "MF_EQ_001",
        "amount": "10000",
        "frequency": "Monthly",
        "start_date": "2026-11-05",
        "installments": 12,
        "nominees": [{"percentage": "100", "pan": "ABCDE1234F", "date_of_birth": "1985-04-12"}],
        "euin": "E123456",
    }
    payload.update(overrides)
    return payload


def _create(client: TestClient, **overrides) -> dict:
    response = client.post("/systematic-plans", json=_sip_payload(**overrides))
    assert response.status_code == 200, response.json()
    return response.json()["plan"]


def test_create_plan_returns_active_plan():
    with TestClient(app) as client:
        response = client.post(
            "/systematic-plans",
            json=_sip_payload(),
            headers={"Idempotency-Key": "plan-create-1"},
        )

    body = response.json()
    assert response.status_code == 200
    assert body["accepted"] is True
    assert body["plan"]["plan_id"].startswith("SIP-20261019-")
    assert body["plan"]["status"] == "ACTIVE"
    assert body["plan"]["amount"] == "10000"
    assert body["plan"]["next_execution_date"] == "2026-11-05"
    assert body["errors"] == []


def test_create_plan_validation_errors_return_422_with_all_errors():
    with TestClient(app) as client:
        response = client.post(
            "/systematic-plans",
            json=_sip_payload(
                amount="4000",
                nominees=[
                    {"percentage": "60", "pan": "ABCDE1234F"},
                    {"percentage": "50", "pan": "ABCD1234F"},
                ],
            ),
        )
        listed = client.get("/systematic-plans").json()

    body = response.json()
    assert response.status_code == 422
    assert body["accepted"] is False
    assert body["plan"] is None
    assert body["errors"] == [
        "Item 1: Amount ₹4,000 is below minimum investment of ₹5,000",
        "Nominee percentages must total exactly 100%. Current total: 110%",
        "Nominee 2: Invalid PAN format",
    ]
    assert listed["items"] == []


def test_create_stp_without_target_is_a_request_shape_error():
    with TestClient(app) as client:
        response = client.post(
            "/systematic-plans",
            json=_sip_payload(plan_type="STP", product_id=None, source_product_id="MF_DEBT_002"),
        )

    assert response.status_code == 422
    assert "detail" in response.json()


def test_create_plan_idempotency_replay_and_conflict():
    with TestClient(app) as client:
        headers = {"Idempotency-Key": "plan-create-idem"}
        first = client.post("/systematic-plans", json=_sip_payload(), headers=headers)
        replay = client.post("/systematic-plans", json=_sip_payload(), headers=headers)
        conflict = client.post(
            "/systematic-plans", json=_sip_payload(amount="20000"), headers=headers
        )

    assert replay.status_code == 200
    assert replay.json()["plan"]["plan_id"] == first.json()["plan"]["plan_id"]
    assert conflict.status_code == 409
    assert conflict.json()["detail"].startswith("IDEMPOTENCY_KEY_CONFLICT")


def test_get_plan_and_missing_plan():
    with TestClient(app) as client:
        plan = _create(client)
        found = client.get(f"/systematic-plans/{plan['plan_id']}")
        missing = client.get("/systematic-plans/SIP-20261019-NONE0")

    assert found.status_code == 200
    assert found.json() == plan
    assert missing.status_code == 404
    assert missing.json()["detail"] == "PLAN_NOT_FOUND"


def test_list_plans_filters_and_paginates():
    with TestClient(app) as client:
        first = _create(client)
        second = _create(client, amount="15000")
        swp = _create(
            client,
            plan_type="SWP",
            product_id="MF_DEBT_002",
            amount="5000",
            nominees=None,
            opt_out_of_nomination=True,
        )
        page = client.get("/systematic-plans", params={"limit": 2}).json()
        by_type = client.get("/systematic-plans", params={"plan_type": "SWP"}).json()
        by_status = client.get("/systematic-plans", params={"status": "CANCELLED"}).json()
        invalid = client.get("/systematic-plans", params={"plan_type": "RD"})

    all_ids = {first["plan_id"], second["plan_id"], swp["plan_id"]}
    assert len(page["items"]) == 2
    assert page["next_cursor"] == page["items"][-1]["plan_id"]
    assert {item["plan_id"] for item in page["items"]} <= all_ids
    assert [item["plan_id"] for item in by_type["items"]] == [swp["plan_id"]]
    assert by_status["items"] == []
    assert invalid.status_code == 422


def test_modify_plan_and_conflict_on_due_date(manual_clock):
    with TestClient(app) as client:
        plan = _create(client)
        modified = client.patch(
            f"/systematic-plans/{plan['plan_id']}",
            json={"actor_id": "rm_101", "amount": "12000", "frequency": "Quarterly"},
        )
        rejected = client.patch(
            f"/systematic-plans/{plan['plan_id']}",
            json={"actor_id": "rm_101", "amount": "4000"},
        )
        manual_clock.advance_to(at_ist(date(2026, 11, 5), 8))
        due_today = client.patch(
            f"/systematic-plans/{plan['plan_id']}",
            json={"actor_id": "rm_101", "amount": "13000"},
        )

    assert modified.status_code == 200
    assert modified.json()["plan"]["amount"] == "12000"
    assert modified.json()["plan"]["frequency"] == "Quarterly"
    assert rejected.status_code == 422
    assert rejected.json()["errors"] == [
        "Item 1: Amount ₹4,000 is below minimum investment of ₹5,000"
    ]
    assert due_today.status_code == 409
    assert due_today.json()["detail"] == "STATE_CONFLICT: plan is due for execution today"


def test_cancel_plan_requires_confirmation_and_is_terminal():
    with TestClient(app) as client:
        plan = _create(client)
        path = f"/systematic-plans/{plan['plan_id']}/cancel"
        unconfirmed = client.post(path, json={"actor_id": "rm_101"})
        cancelled = client.post(
            path, json={"actor_id": "rm_101", "confirm": True, "reason": "Client request"}
        )
        again = client.post(path, json={"actor_id": "rm_101", "confirm": True})
        modify_after = client.patch(
            f"/systematic-plans/{plan['plan_id']}", json={"actor_id": "rm_101", "amount": "6000"}
        )

    assert unconfirmed.status_code == 422
    assert unconfirmed.json()["errors"] == ["CANCELLATION_CONFIRMATION_REQUIRED"]
    assert cancelled.status_code == 200
    assert cancelled.json()["plan"]["status"] == "CANCELLED"
    assert cancelled.json()["plan"]["cancellation_reason"] == "Client request"
    assert again.status_code == 409
    assert modify_after.status_code == 409


def test_scheduler_run_is_visible_in_execution_log_endpoints(manual_clock):
    with TestClient(app) as client:
        plan = _create(client)
        plans_router.get_order_book().queue_rejection(plan["plan_id"], "Insufficient funds")
        manual_clock.advance_to(at_ist(date(2026, 11, 5), 9))
        report = plans_router.build_scheduler(clock=manual_clock).run_business_day()

        plan_log = client.get(f"/systematic-plans/{plan['plan_id']}/executions").json()
        executed = client.get(
            "/systematic-plans/executions",
            params={"outcome": "EXECUTED", "business_date_from": "2026-11-05"},
        ).json()
        refreshed = client.get(f"/systematic-plans/{plan['plan_id']}").json()

    assert report.executed == 1
    assert [(item["attempt_no"], item["outcome"]) for item in plan_log["items"]] == [
        (1, "RETRYING"),
        (2, "EXECUTED"),
    ]
    assert plan_log["items"][0]["reason"] == "Insufficient funds"
    assert [item["plan_id"] for item in executed["items"]] == [plan["plan_id"]]
    assert executed["items"][0]["order_id"] == "ORD-000001"
    assert refreshed["installments_executed"] == 1
    assert refreshed["next_execution_date"] == "2026-12-05"


def test_supportability_config_reports_backend_and_policy(monkeypatch):
    with TestClient(app) as client:
        ready = client.get("/systematic-plans/supportability/config").json()
        monkeypatch.setenv("PLAN_STORE_BACKEND", "POSTGRES")
        missing_dsn = client.get("/systematic-plans/supportability/config").json()

    assert ready["store_backend"] == "IN_MEMORY"
    assert ready["backend_ready"] is True
    assert ready["scheduler_timezone"] == "Asia/Kolkata"
    assert ready["business_day_start"] == "09:30"
    assert ready["cutoff_time"] == "15:00"
    assert ready["max_attempts"] == 3
    assert ready["retry_offsets_minutes"] == [120, 60]
    assert missing_dsn["store_backend"] == "POSTGRES"
    assert missing_dsn["backend_ready"] is False
    assert missing_dsn["backend_init_error"] == "PLAN_POSTGRES_DSN_REQUIRED"


def test_lifecycle_endpoints_can_be_disabled(monkeypatch):
    monkeypatch.setenv("PLAN_LIFECYCLE_ENABLED", "false")
    with TestClient(app) as client:
        response = client.post("/systematic-plans", json=_sip_payload())

    assert response.status_code == 404
    assert response.json()["detail"] == "PLAN_LIFECYCLE_DISABLED"


def test_postgres_backend_without_dsn_returns_503(monkeypatch):
    monkeypatch.setenv("PLAN_STORE_BACKEND", "POSTGRES")
    reset_plan_service_for_tests()

    with TestClient(app) as client:
        response = client.get("/systematic-plans")

    assert response.status_code == 503
    assert response.json()["detail"] == "PLAN_POSTGRES_DSN_REQUIRED"


def test_get_plan_service_maps_connection_failures_to_503(monkeypatch):
    def _raise_runtime():
        raise RuntimeError("connection refused")

    reset_plan_service_for_tests()
    monkeypatch.setattr(plans_router.plans_config, "build_repository", _raise_runtime)

    with pytest.raises(HTTPException) as exc_info:
        plans_router.get_plan_service()
    assert exc_info.value.status_code == 503
    assert exc_info.value.detail == "PLAN_POSTGRES_CONNECTION_FAILED"


def test_unhandled_errors_are_problem_details():
    def _explode():
        raise ValueError("boom")

    app.dependency_overrides[plans_router.get_plan_service] = _explode
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/systematic-plans")
    finally:
        app.dependency_overrides.pop(plans_router.get_plan_service, None)

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["instance"] == "/systematic-plans"


def test_health_and_correlation_headers():
    with TestClient(app) as client:
        response = client.get("/health", headers={"X-Correlation-Id": "corr-plan-1"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Correlation-Id"] == "corr-plan-1"
    assert response.headers["X-Request-Id"].startswith("req_")
