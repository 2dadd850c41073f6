from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from src.core.plans.collaborators import MarketValueSource, ProductCatalog
from src.core.plans.models import InstallmentTerms, PlanType
from src.core.validation.engine import validate_order
from src.core.validation.models import (
    MARKET_VALUE_TRANSACTION_TYPES,
    OrderInstruction,
    OrderValidationRequest,
    ProductReference,
    TransactionType,
    ValidationResult,
)

INSTALLMENT_TRANSACTION_TYPES: dict[PlanType, TransactionType] = {
    "SIP": "Purchase",
    "STP": "Switch",
    "SWP": "Redemption",
}


def build_installment_instruction(terms: InstallmentTerms) -> OrderInstruction:
    return OrderInstruction(
        product_id=terms.product_id,
        amount=terms.amount,
        transaction_type=INSTALLMENT_TRANSACTION_TYPES[terms.plan_type],
        source_product_id=terms.source_product_id if terms.plan_type == "STP" else None,
    )


def validate_installment(
    terms: InstallmentTerms,
    *,
    product_catalog: ProductCatalog,
    market_values: MarketValueSource,
    as_of: date,
    plan_errors: Iterable[str] = (),
) -> ValidationResult:
    """
    Validate one installment of a plan against current catalog limits and holdings.

    Limits are checked against the product money moves into (the STP target); the market
    value is looked up for the held product (the STP source, or the SWP product).
    Products missing from the catalog are reported as errors, since a plan cannot run
    against a delisted product.
    """
    instruction = build_installment_instruction(terms)
    errors: List[str] = list(plan_errors)

    product_data: List[ProductReference] = []
    for product_id in _referenced_products(instruction):
        product = product_catalog.get_product(product_id)
        if product is None:
            errors.append(f"Product {product_id} is not available in the product catalog")
        elif product_id == instruction.product_id:
            product_data.append(product)

    holdings: Dict[str, Decimal] = {}
    if instruction.transaction_type in MARKET_VALUE_TRANSACTION_TYPES:
        held_product_id = instruction.held_product_id()
        market_value = market_values.get_market_value(terms.client_id, held_product_id)
        if market_value is not None:
            holdings[held_product_id] = market_value

    result = validate_order(
        OrderValidationRequest(
            cart_items=[instruction],
            opt_out_of_nomination=terms.opt_out_of_nomination,
            nominees=terms.nominees,
            euin=terms.euin,
            product_data=product_data,
            market_values=holdings or None,
        ),
        as_of=as_of,
    )
    errors.extend(result.errors)
    return ValidationResult(is_valid=not errors, errors=errors, warnings=result.warnings)


def _referenced_products(instruction: OrderInstruction) -> List[str]:
    if instruction.source_product_id:
        return [instruction.source_product_id, instruction.product_id]
    return [instruction.product_id]
