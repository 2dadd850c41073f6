from decimal import Decimal
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from src.core.validation.models import OrderInstruction, ProductReference


class OrderSubmissionResult(BaseModel):
    success: bool = Field(description="Whether the order book accepted the order.", examples=[True])
    order_id: Optional[str] = Field(
        default=None, description="Order book reference when accepted.", examples=["ORD-1001"]
    )
    reason: Optional[str] = Field(
        default=None,
        description="Rejection reason when not accepted.",
        examples=["Insufficient funds"],
    )


class ProductCatalog(Protocol):
    def get_product(self, product_id: str) -> Optional[ProductReference]: ...


class MarketValueSource(Protocol):
    def get_market_value(self, client_id: str, product_id: str) -> Optional[Decimal]: ...


class OrderBook(Protocol):
    """Order placement seam.

    Submissions that repeat an accepted ``order_reference`` must not place a second order;
    the original acceptance is returned instead.
    """

    def submit_order(
        self,
        instruction: OrderInstruction,
        *,
        client_id: str,
        plan_id: str,
        order_reference: Optional[str] = None,
    ) -> OrderSubmissionResult: ...
