"""Plan-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class InstallmentSchema(BaseModel):
    """Schema for an installment in the plan response."""

    installment_id: str = Field(
        ...,
        description="UUID of the installment",
    )
    installment_number: int = Field(
        ...,
        ge=1,
        description="Position of the installment in the plan, starting at 1",
    )
    due_date: str = Field(
        ...,
        description="Due date in ISO 8601 format (YYYY-MM-DD)",
        examples=["2024-02-15"],
    )
    amount_cents: int = Field(
        ...,
        gt=0,
        description="Installment amount in cents",
        examples=[12500],
    )
    status: str = Field(
        ...,
        description="Current status of the installment",
        examples=["scheduled"],
    )
    failure_count: int = Field(0, ge=0, description="Failed charge attempts so far")
    last_failure_reason: str | None = Field(None, description="Reason of the last failed attempt")
    paid_at: str | None = Field(None, description="When the installment was paid")


class PlanResponseSchema(BaseModel):
    """Schema for GET /v1/plans/{plan_id} response."""

    plan_id: str = Field(..., description="UUID of the plan")
    rental_id: str = Field(..., description="Rental this plan pays for")
    customer_id: str = Field(..., description="Customer who owns this plan")
    plan_type: str = Field(..., description="weekly or monthly", examples=["monthly"])
    status: str = Field(..., description="Plan status", examples=["active"])
    number_of_installments: int = Field(..., ge=1)
    installment_amount_cents: int = Field(..., description="Regular installment amount")
    upfront_amount_cents: int = Field(..., description="Amount collected at checkout")
    upfront_paid: bool
    total_installable_cents: int = Field(..., description="Balance split into installments")
    total_paid_cents: int
    paid_installments: int
    next_due_date: str | None = None
    has_payment_method: bool = Field(..., description="Whether a card is on file for off-session charges")
    past_due_installments: int = Field(
        0,
        description="Unpaid installments past their due date plus the plan's grace period",
    )
    past_due_cents: int = Field(0, description="Sum of the past-due installments")
    installments: list[InstallmentSchema] = Field(
        ...,
        description="List of installments in number order",
    )


class CancelPlanRequestSchema(BaseModel):
    reason: str | None = Field(None, max_length=500, description="Why the plan is cancelled")


class MarkPaidRequestSchema(BaseModel):
    """Body for recording an installment paid outside the processor."""

    payment_id: UUID | None = Field(
        None,
        description="Existing payment that covered the installment; a cash payment is recorded when omitted",
    )
