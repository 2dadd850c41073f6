"""
FILE: tests/conftest.py
Shared fixtures for systematic plan tests.
"""

from datetime import datetime
from pathlib import Path

import pytest

from src.api.routers.plans import reset_plan_service_for_tests
from src.core.common.clock import ManualClock
from src.infrastructure.plans import InMemorySystematicPlanRepository
from tests.factories import IST, catalog, market_values


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if (
            _has_marker(item, "unit")
            or _has_marker(item, "integration")
            or _has_marker(item, "e2e")
        ):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        if "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture
def manual_clock() -> ManualClock:
    # Monday 2026-10-19, 10:00 in Mumbai.
    return ManualClock(datetime(2026, 10, 19, 10, 0, tzinfo=IST))


@pytest.fixture
def product_catalog():
    return catalog()


@pytest.fixture
def holdings():
    return market_values()


@pytest.fixture(autouse=True)
def plan_runtime_test_harness(monkeypatch: pytest.MonkeyPatch):
    """Keep the plan runtime on deterministic in-memory doubles between tests."""

    monkeypatch.delenv("PLAN_STORE_BACKEND", raising=False)
    monkeypatch.delenv("PLAN_POSTGRES_DSN", raising=False)
    monkeypatch.delenv("APP_PERSISTENCE_PROFILE", raising=False)
    monkeypatch.delenv("PLAN_SCHEDULER_ENABLED", raising=False)
    monkeypatch.delenv("PLAN_LIFECYCLE_ENABLED", raising=False)
    monkeypatch.setattr(
        "src.api.routers.plans_config.PostgresSystematicPlanRepository",
        lambda **_kwargs: InMemorySystematicPlanRepository(),
    )
    reset_plan_service_for_tests()
    yield
    reset_plan_service_for_tests()
