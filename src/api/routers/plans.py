from typing import Optional

from fastapi import APIRouter, HTTPException, status

from src.api.routers import plans_config
from src.api.routers.runtime_utils import assert_feature_enabled, normalize_backend_init_error
from src.core.common.clock import Clock, SystemClock
from src.core.plans import SystematicPlanRepository, SystematicPlanService
from src.core.scheduling import ExecutionScheduler
from src.infrastructure.order_book import InMemoryOrderBook

router = APIRouter(tags=["Systematic Plans"])

_REPOSITORY: Optional[SystematicPlanRepository] = None
_SERVICE: Optional[SystematicPlanService] = None
_ORDER_BOOK: Optional[InMemoryOrderBook] = None
_CLOCK: Clock = SystemClock()


def get_plan_service() -> SystematicPlanService:
    global _REPOSITORY
    global _SERVICE
    if _SERVICE is not None:
        return _SERVICE
    if _REPOSITORY is None:
        try:
            _REPOSITORY = plans_config.build_repository()
        except RuntimeError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=normalize_backend_init_error(
                    detail=str(exc),
                    required_detail="PLAN_POSTGRES_DSN_REQUIRED",
                    fallback_detail="PLAN_POSTGRES_CONNECTION_FAILED",
                ),
            ) from exc
    product_catalog, market_values = plans_config.build_reference_data()
    _SERVICE = SystematicPlanService(
        repository=_REPOSITORY,
        product_catalog=product_catalog,
        market_values=market_values,
        clock=_CLOCK,
        business_timezone=plans_config.build_retry_policy().tz,
        require_future_start_date=plans_config.require_future_start_date(),
    )
    return _SERVICE


def get_order_book() -> InMemoryOrderBook:
    global _ORDER_BOOK
    if _ORDER_BOOK is None:
        _ORDER_BOOK = InMemoryOrderBook()
    return _ORDER_BOOK


def build_scheduler(*, clock: Optional[Clock] = None) -> ExecutionScheduler:
    return ExecutionScheduler(
        service=get_plan_service(),
        order_book=get_order_book(),
        policy=plans_config.build_retry_policy(),
        clock=clock or _CLOCK,
        max_workers=plans_config.scheduler_max_workers(),
    )


def set_plan_clock(clock: Clock) -> None:
    global _CLOCK
    global _SERVICE
    _CLOCK = clock
    _SERVICE = None


def reset_plan_service_for_tests(*, clock: Optional[Clock] = None) -> None:
    global _REPOSITORY
    global _SERVICE
    global _ORDER_BOOK
    global _CLOCK
    _REPOSITORY = None
    _SERVICE = None
    _ORDER_BOOK = None
    _CLOCK = clock or SystemClock()


def _assert_lifecycle_enabled() -> None:
    assert_feature_enabled(
        name="PLAN_LIFECYCLE_ENABLED",
        default=True,
        detail="PLAN_LIFECYCLE_DISABLED",
    )


from src.api.routers import plans_lifecycle_routes as _plans_lifecycle_routes  # noqa: E402,F401
from src.api.routers import plans_query_routes as _plans_query_routes  # noqa: E402,F401
