from collections import deque
from threading import Lock
from typing import Optional

from pydantic import BaseModel, Field

from src.core.plans.collaborators import OrderSubmissionResult
from src.core.validation.models import OrderInstruction


class SubmittedOrder(BaseModel):
    order_id: str = Field(description="Assigned order reference.", examples=["ORD-000001"])
    plan_id: str = Field(description="Plan the order belongs to.", examples=["SIP-20261019-A1B2C"])
    client_id: str = Field(description="Investor identifier.", examples=["client_001"])
    order_reference: Optional[str] = Field(
        default=None,
        description="Caller deduplication key, one per plan installment.",
        examples=["SIP-20261019-A1B2C:2026-11-05"],
    )
    instruction: OrderInstruction = Field(description="Submitted order line.")


class InMemoryOrderBook:
    """Order book stand-in that accepts every order unless a rejection is queued for the plan."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._orders: list[SubmittedOrder] = []
        self._by_reference: dict[str, SubmittedOrder] = {}
        self._rejections: dict[str, deque[str]] = {}

    def queue_rejection(self, plan_id: str, reason: str, *, times: int = 1) -> None:
        with self._lock:
            self._rejections.setdefault(plan_id, deque()).extend([reason] * times)

    def submit_order(
        self,
        instruction: OrderInstruction,
        *,
        client_id: str,
        plan_id: str,
        order_reference: Optional[str] = None,
    ) -> OrderSubmissionResult:
        with self._lock:
            existing = self._by_reference.get(order_reference) if order_reference else None
            if existing is not None:
                return OrderSubmissionResult(success=True, order_id=existing.order_id)
            rejection = self._pop_rejection(plan_id)
            if rejection is not None:
                return OrderSubmissionResult(success=False, reason=rejection)
            order = SubmittedOrder(
                order_id=f"ORD-{len(self._orders) + 1:06d}",
                plan_id=plan_id,
                client_id=client_id,
                order_reference=order_reference,
                instruction=instruction,
            )
            self._orders.append(order)
            if order_reference:
                self._by_reference[order_reference] = order
        return OrderSubmissionResult(success=True, order_id=order.order_id)

    def list_orders(self, *, plan_id: Optional[str] = None) -> list[SubmittedOrder]:
        with self._lock:
            return [
                order for order in self._orders if plan_id is None or order.plan_id == plan_id
            ]

    def _pop_rejection(self, plan_id: str) -> Optional[str]:
        queued = self._rejections.get(plan_id)
        if not queued:
            return None
        return queued.popleft()
