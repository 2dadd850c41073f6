import os
from datetime import time
from typing import cast

from pydantic import ValidationError

from src.api.routers.runtime_utils import env_csv_ints, env_flag, env_int, env_str
from src.core.plans.repository import SystematicPlanRepository
from src.core.scheduling import RetryPolicy
from src.infrastructure.plans import (
    InMemorySystematicPlanRepository,
    PostgresSystematicPlanRepository,
)
from src.infrastructure.reference_data import (
    InMemoryMarketValueSource,
    InMemoryProductCatalog,
    build_market_value_source,
    build_product_catalog,
)

DEFAULT_SCHEDULER_TIMEZONE = "Asia/Kolkata"
DEFAULT_BUSINESS_DAY_START = "09:30"
DEFAULT_CUTOFF = "15:00"
DEFAULT_RETRY_OFFSETS_MINUTES = [120, 60]


def plan_store_backend_name() -> str:
    backend = os.getenv("PLAN_STORE_BACKEND", "IN_MEMORY").strip().upper()
    return "POSTGRES" if backend == "POSTGRES" else "IN_MEMORY"


def plan_postgres_dsn() -> str:
    return os.getenv("PLAN_POSTGRES_DSN", "").strip()


def plan_lifecycle_enabled() -> bool:
    return env_flag("PLAN_LIFECYCLE_ENABLED", True)


def plan_scheduler_enabled() -> bool:
    return env_flag("PLAN_SCHEDULER_ENABLED", False)


def require_future_start_date() -> bool:
    return env_flag("PLAN_REQUIRE_FUTURE_START_DATE", True)


def scheduler_max_workers() -> int:
    return env_int("PLAN_SCHEDULER_MAX_WORKERS", 8)


def build_retry_policy() -> RetryPolicy:
    try:
        return RetryPolicy(
            timezone_name=env_str("PLAN_SCHEDULER_TIMEZONE", DEFAULT_SCHEDULER_TIMEZONE),
            business_day_start=_env_time("PLAN_SCHEDULER_DAY_START", DEFAULT_BUSINESS_DAY_START),
            cutoff=_env_time("PLAN_SCHEDULER_CUTOFF", DEFAULT_CUTOFF),
            max_attempts=env_int("PLAN_SCHEDULER_MAX_ATTEMPTS", 3),
            retry_offsets_minutes=env_csv_ints(
                "PLAN_SCHEDULER_RETRY_OFFSETS_MINUTES", DEFAULT_RETRY_OFFSETS_MINUTES
            ),
        )
    except (ValidationError, ValueError) as exc:
        raise RuntimeError("PLAN_SCHEDULER_CONFIG_INVALID") from exc


def _env_time(name: str, default: str) -> time:
    return time.fromisoformat(env_str(name, default))


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> SystematicPlanRepository:
    if plan_store_backend_name() == "POSTGRES":
        dsn = plan_postgres_dsn()
        if not dsn:
            raise RuntimeError("PLAN_POSTGRES_DSN_REQUIRED")
        try:
            return cast(SystematicPlanRepository, PostgresSystematicPlanRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("PLAN_POSTGRES_CONNECTION_FAILED") from exc
    return cast(SystematicPlanRepository, InMemorySystematicPlanRepository())


def build_reference_data() -> tuple[InMemoryProductCatalog, InMemoryMarketValueSource]:
    return (
        build_product_catalog(os.getenv("PRODUCT_CATALOG_JSON")),
        build_market_value_source(os.getenv("MARKET_VALUES_JSON")),
    )
