"""Installment payment Pydantic schemas."""

from pydantic import BaseModel, Field


class CustomerActionSchema(BaseModel):
    """Body of customer-initiated payment requests."""

    customer_id: str = Field(..., min_length=1, max_length=255)


class EarlyPaymentResponseSchema(BaseModel):
    installment_id: str
    payment_id: str
    amount_cents: int
    processor_ref: str | None = None


class PayoffResponseSchema(BaseModel):
    plan_id: str
    payment_id: str
    amount_cents: int = Field(..., description="Total charged for all remaining installments")
    installments_paid: int
    plan_status: str
    processor_ref: str | None = None


class InstallmentResultSchema(BaseModel):
    installment_id: str = Field(..., alias="installmentId")
    success: bool
    processor_ref: str | None = Field(None, alias="processorRef")
    error: str | None = None
    pending: bool = False

    model_config = {"populate_by_name": True}


class ProcessingSummarySchema(BaseModel):
    """Outcome of a due-installment run."""

    processed: int
    successful: int
    failed: int
    pending: int = 0
    due_count: int = Field(..., alias="dueCount")
    retry_count: int = Field(..., alias="retryCount")
    stale_count: int = Field(0, alias="staleCount")
    results: list[InstallmentResultSchema]

    model_config = {"populate_by_name": True}


class ReminderSummarySchema(BaseModel):
    due_date: str
    candidates: int
    sent: int
    skipped: int
    failed: int
