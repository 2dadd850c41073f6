from __future__ import annotations

import os

from src.api.routers.plans_config import (
    plan_postgres_dsn,
    plan_scheduler_enabled,
    plan_store_backend_name,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_persistence_profile_name() -> str:
    profile = os.getenv("APP_PERSISTENCE_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_persistence_profile_guardrails() -> None:
    if app_persistence_profile_name() != _PRODUCTION_PROFILE:
        return
    if plan_store_backend_name() != "POSTGRES":
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_PLAN_POSTGRES")
    if not plan_postgres_dsn():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_PLAN_POSTGRES_DSN")
    if plan_scheduler_enabled() and not os.getenv("PRODUCT_CATALOG_JSON", "").strip():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_PRODUCT_CATALOG")
