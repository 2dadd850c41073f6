from src.core.validation.engine import (
    ValidationCollector,
    age_on,
    is_minor,
    is_valid_pan,
    validate_order,
)
from src.core.validation.models import (
    Nominee,
    OrderInstruction,
    OrderValidationRequest,
    ProductReference,
    TransactionType,
    ValidationResult,
)

__all__ = [
    "Nominee",
    "OrderInstruction",
    "OrderValidationRequest",
    "ProductReference",
    "TransactionType",
    "ValidationCollector",
    "ValidationResult",
    "age_on",
    "is_minor",
    "is_valid_pan",
    "validate_order",
]
