"""Data transfer objects for checkout operations."""

from dataclasses import dataclass, field
from typing import List, Optional

from .plan import PlanRequest


@dataclass(frozen=True)
class CheckoutRequest:
    """A rental checkout, optionally opening an installment plan."""

    rental_id: str
    tenant_id: str
    customer_id: str
    upfront_base_cents: int
    description: str = "Rental payment"
    plan: Optional[PlanRequest] = None
    target_categories: List[str] = field(default_factory=list)

    def validate(self) -> List[str]:
        errors = []

        if self.upfront_base_cents < 0:
            errors.append("upfront_base_cents cannot be negative")

        if self.plan is not None:
            if self.plan.rental_id != self.rental_id:
                errors.append("plan rental_id does not match the checkout rental")
            if self.plan.upfront_base_cents != self.upfront_base_cents:
                errors.append("plan upfront_base_cents does not match the checkout amount")
            errors.extend(self.plan.validate())

        return errors


@dataclass(frozen=True)
class CheckoutResponse:
    session_id: str
    url: Optional[str]
    payment_id: str
    amount_cents: int
    plan_id: Optional[str] = None
    processor_customer_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutConfirmation:
    payment_id: str
    plan_id: Optional[str]
    plan_status: Optional[str]
    already_confirmed: bool = False
