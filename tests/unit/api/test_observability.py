import json
import logging
import sys

from fastapi.testclient import TestClient

from src.api.main import app
from src.api.observability import JsonFormatter, trace_id_from_traceparent
from src.core.common.log_context import bound_log_context, correlation_id_var


def _record(message: str, **extra_fields) -> logging.LogRecord:
    record = logging.LogRecord(
        name="src.core.scheduling.scheduler",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    record.extra_fields = extra_fields
    return record


def test_json_formatter_merges_extra_fields_and_bound_context(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "uat")

    with bound_log_context(correlation_id="plan-run_20261105_abcd1234"):
        line = JsonFormatter().format(
            _record("scheduler attempt failed", plan_id="SIP-20261019-A1B2C", attempt_no=2)
        )

    payload = json.loads(line)
    assert payload["message"] == "scheduler attempt failed"
    assert payload["service"] == "systematic-plans"
    assert payload["environment"] == "uat"
    assert payload["correlation_id"] == "plan-run_20261105_abcd1234"
    assert payload["plan_id"] == "SIP-20261019-A1B2C"
    assert payload["attempt_no"] == 2
    assert "request_id" not in payload
    assert correlation_id_var.get() == ""


def test_json_formatter_renders_exceptions():
    try:
        raise RuntimeError("order gateway down")
    except RuntimeError:
        record = _record("scheduler attempt raised")
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: order gateway down" in payload["exception"]


def test_trace_id_is_reused_from_traceparent():
    trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"

    assert trace_id_from_traceparent(f"00-{trace_id}-00f067aa0ba902b7-01") == trace_id
    assert len(trace_id_from_traceparent("garbage")) == 32
    assert len(trace_id_from_traceparent("")) == 32


def test_middleware_propagates_trace_headers():
    trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"
    with TestClient(app) as client:
        response = client.get(
            "/health",
            headers={
                "traceparent": f"00-{trace_id}-00f067aa0ba902b7-01",
                "X-Request-Id": "req-plan-7",
            },
        )

    assert response.headers["X-Trace-Id"] == trace_id
    assert response.headers["X-Request-Id"] == "req-plan-7"
    assert response.headers["X-Correlation-Id"].startswith("corr_")
    assert response.headers["traceparent"] == f"00-{trace_id}-0000000000000001-01"


def test_metrics_endpoint_is_exposed():
    with TestClient(app) as client:
        client.get("/systematic-plans")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
