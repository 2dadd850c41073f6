"""
FILE: src/core/plans/schedule.py
Installment calendar and plan identifiers.
"""

import calendar
import secrets
import string
from datetime import date, timedelta

from src.core.plans.models import PlanFrequency, PlanType

FREQUENCY_MONTHS: dict[PlanFrequency, int] = {"Monthly": 1, "Quarterly": 3}

PLAN_ID_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
PLAN_ID_SUFFIX_LENGTH = 5


def add_months(value: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def installment_due_date(
    *,
    anchor_date: date,
    frequency: PlanFrequency,
    steps: int,
) -> date:
    # Always counted from the anchor so a clamped month end does not drift later dates.
    return add_months(anchor_date, FREQUENCY_MONTHS[frequency] * steps)


def next_weekday(value: date) -> date:
    while value.weekday() >= 5:
        value += timedelta(days=1)
    return value


def generate_plan_id(plan_type: PlanType, created_on: date) -> str:
    suffix = "".join(
        secrets.choice(PLAN_ID_SUFFIX_ALPHABET) for _ in range(PLAN_ID_SUFFIX_LENGTH)
    )
    return f"{plan_type}-{created_on.strftime('%Y%m%d')}-{suffix}"
