from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.routers.plans import get_plan_service
from src.core.plans import SystematicPlanService
from src.core.validation import OrderValidationRequest, ValidationResult, validate_order

router = APIRouter(tags=["Order Validation"])


@router.post(
    "/orders/validate",
    response_model=ValidationResult,
    status_code=status.HTTP_200_OK,
    summary="Validate Order Cart",
    description=(
        "Checks every cart item against product limits and market value, plus nominee, "
        "guardian and EUIN rules. All violations are reported together; an invalid cart is "
        "still HTTP 200 with `is_valid=false`."
    ),
)
def validate_order_cart(
    payload: OrderValidationRequest,
    as_of: Annotated[
        Optional[date],
        Query(
            description="Date nominee ages are computed on; defaults to the business date.",
            examples=["2026-10-19"],
        ),
    ] = None,
    service: SystematicPlanService = Depends(get_plan_service),
) -> ValidationResult:
    return validate_order(payload, as_of=as_of or service.business_date())
