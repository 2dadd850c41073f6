from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from src.core.validation.models import Nominee

PlanType = Literal["SIP", "STP", "SWP"]
PlanStatus = Literal["ACTIVE", "COMPLETED", "CANCELLED", "FAILED"]
PlanFrequency = Literal["Monthly", "Quarterly"]
ExecutionAttemptOutcome = Literal["EXECUTED", "RETRYING", "FAILED"]
PlanOutcomeType = Literal["EXECUTED", "RETRY_SCHEDULED", "EXHAUSTED"]


class InstallmentTerms(BaseModel):
    plan_type: PlanType = Field(description="Plan type driving the order shape.", examples=["SIP"])
    client_id: str = Field(description="Investor identifier.", examples=["client_001"])
    product_id: str = Field(
        description="SIP/SWP product, or the STP target product.", examples=["MF_EQ_001"]
    )
    source_product_id: Optional[str] = Field(
        default=None, description="STP source product.", examples=["MF_DEBT_002"]
    )
    amount: Decimal = Field(description="Amount per installment.", examples=["10000"])
    nominees: Optional[List[Nominee]] = Field(
        default=None, description="Declared nominees.", examples=[None]
    )
    opt_out_of_nomination: bool = Field(
        default=False, description="Investor opted out of nomination.", examples=[False]
    )
    euin: Optional[str] = Field(default=None, description="Distributor EUIN.", examples=["E123456"])


class PlanCreateRequest(BaseModel):
    plan_type: PlanType = Field(description="Systematic plan type.", examples=["SIP"])
    client_id: str = Field(description="Investor identifier.", examples=["client_001"])
    created_by: str = Field(
        description="Relationship manager or investor creating the plan.",
        examples=["rm_101"],
    )
    product_id: Optional[str] = Field(
        default=None,
        description="Product for SIP and SWP plans.",
        examples=["MF_EQ_001"],
    )
    source_product_id: Optional[str] = Field(
        default=None,
        description="STP source product money is transferred out of.",
        examples=["MF_DEBT_002"],
    )
    target_product_id: Optional[str] = Field(
        default=None,
        description="STP target product money is transferred into.",
        examples=["MF_EQ_001"],
    )
    amount: Decimal = Field(
        gt=Decimal("0"), description="Amount per installment.", examples=["10000"]
    )
    frequency: PlanFrequency = Field(description="Installment frequency.", examples=["Monthly"])
    start_date: date = Field(description="First installment date.", examples=["2026-11-05"])
    installments: int = Field(gt=0, description="Total installment count.", examples=[12])
    nominees: Optional[List[Nominee]] = Field(
        default=None,
        description="Declared nominees for the plan.",
        examples=[[{"percentage": "100", "pan": "ABCDE1234F", "date_of_birth": "1985-04-12"}]],
    )
    opt_out_of_nomination: bool = Field(
        default=False,
        description="Investor explicitly declined to nominate.",
        examples=[False],
    )
    euin: Optional[str] = Field(default=None, description="Distributor EUIN.", examples=["E123456"])

    @model_validator(mode="after")
    def _require_products_for_plan_type(self) -> "PlanCreateRequest":
        if self.plan_type == "STP":
            if not self.source_product_id or not self.target_product_id:
                raise ValueError("STP plans require source_product_id and target_product_id")
        elif not self.product_id:
            raise ValueError(f"{self.plan_type} plans require product_id")
        return self

    def installment_terms(self) -> InstallmentTerms:
        if self.plan_type == "STP":
            product_id = self.target_product_id
            source_product_id = self.source_product_id
        else:
            product_id = self.product_id
            source_product_id = None
        return InstallmentTerms(
            plan_type=self.plan_type,
            client_id=self.client_id,
            product_id=product_id,
            source_product_id=source_product_id,
            amount=self.amount,
            nominees=self.nominees,
            opt_out_of_nomination=self.opt_out_of_nomination,
            euin=self.euin,
        )


class PlanModifyRequest(BaseModel):
    actor_id: str = Field(description="Actor requesting the change.", examples=["rm_101"])
    amount: Optional[Decimal] = Field(
        default=None, gt=Decimal("0"), description="New installment amount.", examples=["15000"]
    )
    frequency: Optional[PlanFrequency] = Field(
        default=None, description="New installment frequency.", examples=["Quarterly"]
    )
    installments: Optional[int] = Field(
        default=None, gt=0, description="New total installment count.", examples=[24]
    )
    nominees: Optional[List[Nominee]] = Field(
        default=None, description="Replacement nominee list.", examples=[None]
    )
    opt_out_of_nomination: Optional[bool] = Field(
        default=None, description="Replacement nomination opt-out flag.", examples=[None]
    )
    euin: Optional[str] = Field(default=None, description="Replacement EUIN.", examples=["E654321"])


class PlanCancelRequest(BaseModel):
    actor_id: str = Field(description="Actor cancelling the plan.", examples=["rm_101"])
    confirm: bool = Field(
        default=False,
        description="Explicit confirmation; cancellation is irreversible.",
        examples=[True],
    )
    reason: Optional[str] = Field(
        default=None,
        description="Free-text cancellation reason kept for audit.",
        examples=["Client requested stop"],
    )


class PlanExecutionOutcome(BaseModel):
    outcome_type: PlanOutcomeType = Field(
        description="Scheduler result for the plan's current due date.",
        examples=["EXECUTED"],
    )
    due_date: date = Field(
        description="Due date the outcome settles.", examples=["2026-11-05"]
    )
    reason: Optional[str] = Field(
        default=None, description="Failure reason for non-executed outcomes.", examples=[None]
    )
    order_id: Optional[str] = Field(
        default=None, description="Order book reference on success.", examples=["ORD-1001"]
    )


class PlanSummary(BaseModel):
    plan_id: str = Field(description="Plan identifier.", examples=["SIP-20261019-A1B2C"])
    plan_type: PlanType = Field(description="Plan type.", examples=["SIP"])
    client_id: str = Field(description="Investor identifier.", examples=["client_001"])
    product_id: str = Field(
        description="SIP/SWP product or STP target product.", examples=["MF_EQ_001"]
    )
    source_product_id: Optional[str] = Field(
        default=None, description="STP source product.", examples=[None]
    )
    amount: Decimal = Field(description="Amount per installment.", examples=["10000"])
    frequency: PlanFrequency = Field(description="Installment frequency.", examples=["Monthly"])
    start_date: str = Field(description="First installment date.", examples=["2026-11-05"])
    installments: int = Field(description="Total installment count.", examples=[12])
    installments_executed: int = Field(description="Installments executed so far.", examples=[0])
    next_execution_date: Optional[str] = Field(
        default=None,
        description="Next due date; empty once the plan is completed.",
        examples=["2026-11-05"],
    )
    last_execution_date: Optional[str] = Field(
        default=None, description="Date of the latest executed installment.", examples=[None]
    )
    status: PlanStatus = Field(description="Lifecycle status.", examples=["ACTIVE"])
    retry_count: int = Field(
        description="Failed attempts on the current due date.", examples=[0]
    )
    created_by: str = Field(description="Creating actor.", examples=["rm_101"])
    created_at: str = Field(
        description="UTC ISO8601 creation timestamp.", examples=["2026-10-19T10:00:00+00:00"]
    )
    updated_at: str = Field(
        description="UTC ISO8601 timestamp of the latest change.",
        examples=["2026-10-19T10:00:00+00:00"],
    )
    cancelled_at: Optional[str] = Field(
        default=None, description="UTC ISO8601 cancellation timestamp.", examples=[None]
    )
    cancellation_reason: Optional[str] = Field(
        default=None, description="Recorded cancellation reason.", examples=[None]
    )
    failure_reason: Optional[str] = Field(
        default=None, description="Latest execution failure reason.", examples=[None]
    )


class PlanMutationResponse(BaseModel):
    accepted: bool = Field(
        description="True when the plan was created or changed.", examples=[True]
    )
    plan: Optional[PlanSummary] = Field(
        default=None, description="Plan state after the operation.", examples=[None]
    )
    errors: List[str] = Field(
        default_factory=list,
        description="Validation errors that blocked the operation.",
        examples=[[]],
    )
    warnings: List[str] = Field(
        default_factory=list, description="Non-blocking validation warnings.", examples=[[]]
    )


class PlanListResponse(BaseModel):
    items: List[PlanSummary] = Field(
        default_factory=list,
        description="Plan rows ordered by creation time, newest first.",
        examples=[[{"plan_id": "SIP-20261019-A1B2C", "status": "ACTIVE"}]],
    )
    next_cursor: Optional[str] = Field(
        default=None, description="Cursor for the next page.", examples=["SIP-20261019-A1B2C"]
    )


class PlanExecutionLogEntry(BaseModel):
    log_id: str = Field(description="Log entry identifier.", examples=["pel_0a1b2c3d4e5f"])
    plan_id: str = Field(description="Plan identifier.", examples=["SIP-20261019-A1B2C"])
    business_date: str = Field(description="Due date attempted.", examples=["2026-11-05"])
    attempt_no: int = Field(description="Attempt number on the due date.", examples=[1])
    attempted_at: str = Field(
        description="UTC ISO8601 attempt timestamp.", examples=["2026-11-05T04:00:00+00:00"]
    )
    outcome: ExecutionAttemptOutcome = Field(description="Attempt outcome.", examples=["EXECUTED"])
    reason: Optional[str] = Field(
        default=None, description="Failure reason.", examples=["Insufficient funds"]
    )
    order_id: Optional[str] = Field(
        default=None, description="Order reference on success.", examples=["ORD-1001"]
    )
    errors: List[str] = Field(
        default_factory=list, description="Validation errors of the attempt.", examples=[[]]
    )


class PlanExecutionLogResponse(BaseModel):
    items: List[PlanExecutionLogEntry] = Field(
        default_factory=list,
        description="Log entries ordered by business date, plan and attempt number.",
        examples=[[{"plan_id": "SIP-20261019-A1B2C", "attempt_no": 1, "outcome": "EXECUTED"}]],
    )
    next_cursor: Optional[str] = Field(
        default=None, description="Cursor for the next page.", examples=["pel_0a1b2c3d4e5f"]
    )


class PlanSupportabilityConfigResponse(BaseModel):
    store_backend: str = Field(description="Plan repository backend.", examples=["IN_MEMORY"])
    backend_ready: bool = Field(
        description="Whether the repository backend initialized.", examples=[True]
    )
    backend_init_error: Optional[str] = Field(
        default=None, description="Backend initialization error code.", examples=[None]
    )
    lifecycle_enabled: bool = Field(
        description="Whether plan lifecycle endpoints are enabled.", examples=[True]
    )
    scheduler_enabled: bool = Field(
        description="Whether the background scheduler runs in this process.", examples=[False]
    )
    scheduler_timezone: str = Field(description="Scheduler timezone.", examples=["Asia/Kolkata"])
    business_day_start: str = Field(description="First attempt time.", examples=["09:30"])
    cutoff_time: str = Field(description="Daily cut-off time.", examples=["15:00"])
    max_attempts: int = Field(description="Attempts per due date.", examples=[3])
    retry_offsets_minutes: List[int] = Field(
        description="Retry offsets before cut-off, in attempt order.", examples=[[120, 60]]
    )


class SystematicPlanRecord(BaseModel):
    plan_id: str = Field(description="Internal plan identifier.", examples=["SIP-20261019-A1B2C"])
    plan_type: PlanType = Field(description="Internal plan type.", examples=["SIP"])
    client_id: str = Field(description="Internal investor identifier.", examples=["client_001"])
    product_id: str = Field(description="Internal product identifier.", examples=["MF_EQ_001"])
    source_product_id: Optional[str] = Field(
        default=None, description="Internal STP source product.", examples=[None]
    )
    amount: Decimal = Field(description="Internal installment amount.", examples=["10000"])
    frequency: PlanFrequency = Field(description="Internal frequency.", examples=["Monthly"])
    start_date: date = Field(description="Internal start date.", examples=["2026-11-05"])
    installments: int = Field(description="Internal installment count.", examples=[12])
    installments_executed: int = Field(
        default=0, description="Internal executed installment count.", examples=[0]
    )
    next_execution_date: Optional[date] = Field(
        default=None, description="Internal next due date.", examples=["2026-11-05"]
    )
    last_execution_date: Optional[date] = Field(
        default=None, description="Internal last executed date.", examples=[None]
    )
    schedule_anchor_date: date = Field(
        description="Internal date later due dates are counted from.", examples=["2026-11-05"]
    )
    schedule_anchor_installment: int = Field(
        default=0,
        description="Internal executed count at the anchor date.",
        examples=[0],
    )
    status: PlanStatus = Field(
        default="ACTIVE", description="Internal status.", examples=["ACTIVE"]
    )
    retry_count: int = Field(default=0, description="Internal retry count.", examples=[0])
    nominees: Optional[List[Nominee]] = Field(
        default=None, description="Internal nominees.", examples=[None]
    )
    opt_out_of_nomination: bool = Field(
        default=False, description="Internal nomination opt-out.", examples=[False]
    )
    euin: Optional[str] = Field(default=None, description="Internal EUIN.", examples=[None])
    created_by: str = Field(description="Internal creating actor.", examples=["rm_101"])
    created_at: datetime = Field(
        description="Internal creation timestamp.", examples=["2026-10-19T10:00:00+00:00"]
    )
    updated_at: datetime = Field(
        description="Internal update timestamp.", examples=["2026-10-19T10:00:00+00:00"]
    )
    cancelled_at: Optional[datetime] = Field(
        default=None, description="Internal cancellation timestamp.", examples=[None]
    )
    cancellation_reason: Optional[str] = Field(
        default=None, description="Internal cancellation reason.", examples=[None]
    )
    failure_reason: Optional[str] = Field(
        default=None, description="Internal failure reason.", examples=[None]
    )
    revision: int = Field(default=1, description="Internal optimistic-lock revision.", examples=[1])

    def installment_terms(self) -> InstallmentTerms:
        return InstallmentTerms(
            plan_type=self.plan_type,
            client_id=self.client_id,
            product_id=self.product_id,
            source_product_id=self.source_product_id,
            amount=self.amount,
            nominees=self.nominees,
            opt_out_of_nomination=self.opt_out_of_nomination,
            euin=self.euin,
        )


class PlanExecutionLogRecord(BaseModel):
    log_id: str = Field(description="Internal log identifier.", examples=["pel_0a1b2c3d4e5f"])
    plan_id: str = Field(description="Internal plan identifier.", examples=["SIP-20261019-A1B2C"])
    business_date: date = Field(description="Internal due date.", examples=["2026-11-05"])
    attempt_no: int = Field(description="Internal attempt number.", examples=[1])
    attempted_at: datetime = Field(
        description="Internal attempt timestamp.", examples=["2026-11-05T04:00:00+00:00"]
    )
    outcome: ExecutionAttemptOutcome = Field(description="Internal outcome.", examples=["EXECUTED"])
    reason: Optional[str] = Field(default=None, description="Internal reason.", examples=[None])
    order_id: Optional[str] = Field(default=None, description="Internal order id.", examples=[None])
    errors: List[str] = Field(
        default_factory=list, description="Internal validation errors.", examples=[[]]
    )


class PlanIdempotencyRecord(BaseModel):
    idempotency_key: str = Field(
        description="Internal idempotency key.", examples=["plan-create-idem-001"]
    )
    request_hash: str = Field(
        description="Internal canonical request hash.", examples=["sha256:abc"]
    )
    plan_id: str = Field(description="Internal plan identifier.", examples=["SIP-20261019-A1B2C"])
    created_at: datetime = Field(
        description="Internal idempotency creation timestamp.",
        examples=["2026-10-19T10:00:00+00:00"],
    )
