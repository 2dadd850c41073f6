"""
FILE: src/core/validation/engine.py
Order and plan-instruction validation rules.
"""

import re
from datetime import date
from decimal import Decimal
from typing import List, Optional

from src.core.validation.models import (
    FULL_TRANSACTION_TYPES,
    MARKET_VALUE_TRANSACTION_TYPES,
    Nominee,
    OrderValidationRequest,
    ValidationResult,
)

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
EUIN_PATTERN = re.compile(r"^E[0-9A-Z]{6}$")
NOMINEE_TOTAL = Decimal("100")
NOMINEE_TOTAL_TOLERANCE = Decimal("0.01")
MINOR_AGE_THRESHOLD = 18


class ValidationCollector:
    """
    Accumulates rule outcomes for one validation call.
    Rules report into the collector and never stop evaluation of later rules.
    """

    def __init__(self) -> None:
        self._errors: List[str] = []
        self._warnings: List[str] = []

    def fail(self, message: str) -> None:
        self._errors.append(message)

    def warn(self, message: str) -> None:
        self._warnings.append(message)

    def require(self, condition: bool, message: str) -> None:
        if not condition:
            self.fail(message)

    def build(self) -> ValidationResult:
        return ValidationResult(
            is_valid=not self._errors,
            errors=list(self._errors),
            warnings=list(self._warnings),
        )


def validate_order(request: OrderValidationRequest, *, as_of: date) -> ValidationResult:
    collector = ValidationCollector()

    if not request.cart_items:
        collector.fail("Cart cannot be empty")
        return collector.build()

    _check_amount_limits(request, collector)
    _check_market_values(request, collector)

    if not request.opt_out_of_nomination and request.nominees is not None:
        _check_nominee_total(request.nominees, collector)
        for index, nominee in enumerate(request.nominees, start=1):
            _check_nominee_pan(index, nominee, collector)
            _check_minor_guardian(index, nominee, collector, as_of=as_of)

    if request.euin:
        collector.require(
            EUIN_PATTERN.fullmatch(request.euin) is not None,
            "EUIN must be in format: E followed by 6 alphanumeric characters",
        )

    return collector.build()


def is_valid_pan(value: Optional[str]) -> bool:
    return value is not None and PAN_PATTERN.fullmatch(value) is not None


def age_on(date_of_birth: date, as_of: date) -> int:
    birthday_pending = (as_of.month, as_of.day) < (date_of_birth.month, date_of_birth.day)
    return as_of.year - date_of_birth.year - (1 if birthday_pending else 0)


def is_minor(date_of_birth: Optional[date], as_of: date) -> bool:
    if date_of_birth is None:
        return False
    return age_on(date_of_birth, as_of) < MINOR_AGE_THRESHOLD


def _check_amount_limits(request: OrderValidationRequest, collector: ValidationCollector) -> None:
    products = {product.product_id: product for product in request.product_data}
    for index, item in enumerate(request.cart_items, start=1):
        # Full liquidations carry the whole holding, so catalog limits do not apply.
        if item.transaction_type in FULL_TRANSACTION_TYPES:
            continue
        product = products.get(item.product_id)
        if product is None:
            continue
        if item.amount < product.min_investment:
            collector.fail(
                f"Item {index}: Amount {_money(item.amount)} is below minimum investment "
                f"of {_money(product.min_investment)}"
            )
        if product.max_investment is not None and item.amount > product.max_investment:
            collector.fail(
                f"Item {index}: Amount {_money(item.amount)} exceeds maximum investment "
                f"of {_money(product.max_investment)}"
            )


def _check_market_values(request: OrderValidationRequest, collector: ValidationCollector) -> None:
    if not request.market_values:
        return
    for index, item in enumerate(request.cart_items, start=1):
        if item.transaction_type not in MARKET_VALUE_TRANSACTION_TYPES:
            continue
        market_value = request.market_values.get(item.held_product_id())
        if market_value is not None and item.amount > market_value:
            collector.fail(
                f"Item {index}: Amount cannot exceed market value of {_money(market_value)}"
            )


def _check_nominee_total(nominees: List[Nominee], collector: ValidationCollector) -> None:
    total = sum((nominee.percentage for nominee in nominees), Decimal("0"))
    if abs(total - NOMINEE_TOTAL) > NOMINEE_TOTAL_TOLERANCE:
        collector.fail(
            "Nominee percentages must total exactly 100%. "
            f"Current total: {_number(total)}%"
        )


def _check_nominee_pan(index: int, nominee: Nominee, collector: ValidationCollector) -> None:
    collector.require(is_valid_pan(nominee.pan), f"Nominee {index}: Invalid PAN format")
    if nominee.guardian_pan:
        collector.require(
            is_valid_pan(nominee.guardian_pan),
            f"Nominee {index}: Invalid guardian PAN format",
        )


def _check_minor_guardian(
    index: int, nominee: Nominee, collector: ValidationCollector, *, as_of: date
) -> None:
    if not is_minor(nominee.date_of_birth, as_of):
        return
    collector.require(
        bool(nominee.guardian_name),
        f"Nominee {index}: Guardian name is required for minor nominees",
    )
    collector.require(
        bool(nominee.guardian_pan),
        f"Nominee {index}: Guardian PAN is required for minor nominees",
    )
    collector.require(
        bool(nominee.guardian_relationship),
        f"Nominee {index}: Guardian relationship is required for minor nominees",
    )


def _number(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _money(value: Decimal) -> str:
    return f"₹{value.normalize():,f}"
