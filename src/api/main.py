"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager
from threading import Event, Thread
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers import plans as plans_router_module
from src.api.routers.order_validation import router as order_validation_router
from src.api.routers.plans import router as plans_router
from src.api.routers.plans_config import plan_scheduler_enabled
from src.core.common.clock import SystemClock

logger = logging.getLogger(__name__)


def _start_scheduler() -> tuple[Thread, Event]:
    stop_event = Event()
    scheduler = plans_router_module.build_scheduler(clock=SystemClock(stop_event=stop_event))
    thread = Thread(
        target=scheduler.run_forever,
        args=(stop_event,),
        name="plan-scheduler-driver",
        daemon=True,
    )
    thread.start()
    logger.info("plan scheduler started")
    return thread, stop_event


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    scheduler_thread: Optional[Thread] = None
    stop_event: Optional[Event] = None
    if plan_scheduler_enabled():
        scheduler_thread, stop_event = _start_scheduler()
    try:
        yield
    finally:
        if stop_event is not None and scheduler_thread is not None:
            stop_event.set()
            scheduler_thread.join(timeout=30)
            logger.info("plan scheduler stopped")


app = FastAPI(
    title="Systematic Plans API",
    version="0.1.0",
    description=(
        "Lifecycle service for recurring mutual-fund plans (SIP, STP, SWP).\n\n"
        "Plans are validated on create and modify, persisted with an append-only execution "
        "log, and executed by a business-day scheduler that retries failed installments "
        "before the cut-off."
    ),
    openapi_tags=[
        {
            "name": "Systematic Plans",
            "description": "Plan create, modify, cancel, query, and execution log endpoints.",
        },
        {
            "name": "Order Validation",
            "description": "Stateless validation of order carts against product rules.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
app.include_router(plans_router)
app.include_router(order_validation_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"], summary="Liveness probe")
def health() -> dict[str, str]:
    return {"status": "ok"}
