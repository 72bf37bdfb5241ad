"""Checkout Pydantic schemas."""

from datetime import date

from pydantic import BaseModel, Field

from fleet_billing.domain.entities import PlanType


class PlanOptionsSchema(BaseModel):
    """Installment options for a checkout that opens a plan."""

    total_installable_cents: int = Field(
        ...,
        gt=0,
        description="Balance to split into installments, in cents",
        examples=[30000],
    )
    plan_type: PlanType = Field(..., description="Installment cadence")
    number_of_installments: int = Field(..., ge=1, description="Installments including any folded first one")
    start_date: date = Field(..., description="Due date of installment #1")
    charge_first_upfront: bool = Field(
        False,
        description="Collect installment #1 together with the upfront amount",
    )
    first_installment_cents: int | None = Field(
        None,
        gt=0,
        description="Amount of the folded first installment; defaults to an even share",
    )
    what_gets_split: str = Field("rental_and_tax", description="Which ledger categories installments pay")
    grace_period_days: int | None = Field(None, ge=0)
    max_retry_attempts: int | None = Field(None, ge=1)
    retry_interval_days: int | None = Field(None, ge=0)


class CheckoutRequestSchema(BaseModel):
    """Schema for POST /v1/checkout request."""

    rental_id: str = Field(..., min_length=1, max_length=255)
    tenant_id: str = Field(..., min_length=1, max_length=255)
    customer_id: str = Field(..., min_length=1, max_length=255)
    upfront_base_cents: int = Field(
        ...,
        ge=0,
        description="Deposit and fees collected at checkout, in cents",
        examples=[20000],
    )
    description: str = Field("Rental payment", max_length=255)
    target_categories: list[str] = Field(
        default_factory=list,
        description="Ledger categories the upfront payment settles",
    )
    plan: PlanOptionsSchema | None = Field(None, description="Installment plan to open with this checkout")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "rental_id": "rental_123",
                    "tenant_id": "tenant_1",
                    "customer_id": "customer_1",
                    "upfront_base_cents": 20000,
                    "plan": {
                        "total_installable_cents": 30000,
                        "plan_type": "monthly",
                        "number_of_installments": 3,
                        "start_date": "2024-01-15",
                        "charge_first_upfront": True,
                        "first_installment_cents": 5000,
                    },
                }
            ]
        }
    }


class CheckoutResponseSchema(BaseModel):
    session_id: str = Field(..., description="Processor checkout session id")
    url: str | None = Field(None, description="Hosted checkout page to redirect the customer to")
    payment_id: str
    amount_cents: int
    plan_id: str | None = None


class CheckoutConfirmRequestSchema(BaseModel):
    """Schema for POST /v1/checkout/confirm request."""

    session_id: str = Field(..., min_length=1, max_length=255)
    payment_intent_id: str | None = None
    payment_method_id: str | None = None
    charge_id: str | None = None


class CheckoutConfirmResponseSchema(BaseModel):
    payment_id: str
    plan_id: str | None = None
    plan_status: str | None = None
    already_confirmed: bool = False
