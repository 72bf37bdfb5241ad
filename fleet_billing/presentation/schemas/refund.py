"""Refund and rejection Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class RejectRentalRequestSchema(BaseModel):
    reason: str | None = Field(None, max_length=500, description="Why the rental was rejected")


class RefundOutcomeSchema(BaseModel):
    payment_id: str
    action: str = Field(..., description="refunded, released, pending_manual or cancelled")
    amount_cents: int
    processor_refund_ref: str | None = None
    error: str | None = None


class RejectionResponseSchema(BaseModel):
    """Schema for POST /v1/rentals/{rental_id}/reject response."""

    rental_id: str
    payments_processed: int
    total_refunded_cents: int
    manual_refunds_required: int
    ledger_entries_created: int
    plan_cancelled_id: str | None = None
    charges_cancelled: int
    results: list[RefundOutcomeSchema]


class RefundableBalanceSchema(BaseModel):
    rental_id: str
    category: str
    total_charged_cents: int
    total_paid_cents: int
    total_refunded_cents: int
    available_for_refund_cents: int


class RefundRequestSchema(BaseModel):
    """Schema for POST /v1/refunds request."""

    rental_id: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100, examples=["Security Deposit"])
    amount_cents: int = Field(..., gt=0, description="Amount to refund, in cents")
    reason: str | None = Field(None, max_length=500)
    payment_id: UUID | None = Field(None, description="Payment to refund through; defaults to the latest card payment")
    processed_by: str | None = Field(None, max_length=255)


class RefundResponseSchema(BaseModel):
    rental_id: str
    category: str
    amount_cents: int
    status: str
    payment_id: str | None = None
    processor_refund_ref: str | None = None
    available_after_cents: int
