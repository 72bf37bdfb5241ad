"""Stored payment method Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class SetupSessionRequestSchema(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=255)
    plan_id: UUID | None = Field(None, description="Plan the new card is meant for")


class SetupSessionResponseSchema(BaseModel):
    customer_id: str
    setup_intent_id: str
    client_secret: str | None = Field(None, description="Secret the browser uses to collect the card")
    processor_customer_id: str


class ConfirmPaymentMethodRequestSchema(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=255)
    payment_method_id: str = Field(..., min_length=1, max_length=255)
    plan_id: UUID | None = Field(None, description="Only update this plan; all active plans when omitted")


class CardSchema(BaseModel):
    payment_method_id: str
    brand: str | None = None
    last4: str | None = None
    exp_month: int | None = None
    exp_year: int | None = None


class PaymentMethodUpdateResponseSchema(BaseModel):
    customer_id: str
    payment_method_id: str
    updated_plan_ids: list[str]
    card: CardSchema
