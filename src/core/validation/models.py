from datetime import date
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

TransactionType = Literal[
    "Purchase",
    "Redemption",
    "Switch",
    "Full Redemption",
    "Full Switch",
]

FULL_TRANSACTION_TYPES = {"Full Redemption", "Full Switch"}
MARKET_VALUE_TRANSACTION_TYPES = {"Redemption", "Switch"}


class ProductReference(BaseModel):
    product_id: str = Field(description="Catalog product identifier.", examples=["MF_EQ_001"])
    min_investment: Decimal = Field(
        description="Minimum amount accepted per order for this product.",
        examples=["5000"],
    )
    max_investment: Optional[Decimal] = Field(
        default=None,
        description="Optional maximum amount accepted per order for this product.",
        examples=["1000000"],
    )


class Nominee(BaseModel):
    percentage: Decimal = Field(
        ge=Decimal("0"),
        le=Decimal("100"),
        description="Share of the eventual payout allotted to this nominee.",
        examples=["60"],
    )
    pan: str = Field(description="Nominee PAN.", examples=["ABCDE1234F"])
    date_of_birth: Optional[date] = Field(
        default=None,
        description="Nominee date of birth, used to decide whether a guardian is required.",
        examples=["1985-04-12"],
    )
    guardian_name: Optional[str] = Field(
        default=None,
        description="Guardian name, mandatory for minor nominees.",
        examples=["Anita Rao"],
    )
    guardian_pan: Optional[str] = Field(
        default=None,
        description="Guardian PAN, mandatory for minor nominees.",
        examples=["PQRSX6789K"],
    )
    guardian_relationship: Optional[str] = Field(
        default=None,
        description="Guardian relationship to the nominee, mandatory for minor nominees.",
        examples=["Mother"],
    )


class OrderInstruction(BaseModel):
    product_id: str = Field(
        description=(
            "Product the amount is validated against. For switches this is the target product."
        ),
        examples=["MF_EQ_001"],
    )
    amount: Decimal = Field(description="Order amount.", examples=["50000"])
    transaction_type: TransactionType = Field(
        description="Order transaction type.",
        examples=["Purchase"],
    )
    source_product_id: Optional[str] = Field(
        default=None,
        description="Held product a switch moves money out of.",
        examples=["MF_DEBT_002"],
    )

    def held_product_id(self) -> str:
        return self.source_product_id or self.product_id


class OrderValidationRequest(BaseModel):
    cart_items: List[OrderInstruction] = Field(
        default_factory=list,
        description="Order lines to validate.",
        examples=[[{"product_id": "MF_EQ_001", "amount": "50000", "transaction_type": "Purchase"}]],
    )
    opt_out_of_nomination: bool = Field(
        default=False,
        description="Investor explicitly declined to nominate; skips all nominee rules.",
        examples=[False],
    )
    nominees: Optional[List[Nominee]] = Field(
        default=None,
        description="Declared nominees for the order.",
        examples=[[{"percentage": "100", "pan": "ABCDE1234F", "date_of_birth": "1985-04-12"}]],
    )
    euin: Optional[str] = Field(
        default=None,
        description="Distributor EUIN (E followed by 6 alphanumeric characters).",
        examples=["E123456"],
    )
    product_data: List[ProductReference] = Field(
        default_factory=list,
        description="Catalog limits for the products referenced by cart items.",
        examples=[[{"product_id": "MF_EQ_001", "min_investment": "5000"}]],
    )
    market_values: Optional[Dict[str, Decimal]] = Field(
        default=None,
        description="Current market value of the investor's holding per product id.",
        examples=[{"MF_EQ_001": "250000"}],
    )


class ValidationResult(BaseModel):
    is_valid: bool = Field(description="True when no rule reported an error.", examples=[True])
    errors: List[str] = Field(
        default_factory=list,
        description="Every rule violation found, in rule order.",
        examples=[["Item 1: Amount ₹4,000 is below minimum investment of ₹5,000"]],
    )
    warnings: List[str] = Field(
        default_factory=list,
        description="Non-blocking observations.",
        examples=[[]],
    )
