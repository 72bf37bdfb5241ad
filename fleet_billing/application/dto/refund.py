"""Data transfer objects for refunds and rental rejection."""

from dataclasses import dataclass, field
from typing import List, Optional


class RefundAction:
    REFUNDED = "refunded"
    RELEASED = "released"
    PENDING_MANUAL = "pending_manual"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RefundRequest:
    rental_id: str
    category: str
    amount_cents: int
    reason: Optional[str] = None
    payment_id: Optional[str] = None
    processed_by: Optional[str] = None

    def validate(self) -> List[str]:
        errors = []

        if not self.rental_id or not self.rental_id.strip():
            errors.append("rental_id is required")

        if not self.category or not self.category.strip():
            errors.append("category is required")

        if self.amount_cents <= 0:
            errors.append("amount_cents must be positive")

        return errors


@dataclass(frozen=True)
class RefundResponse:
    rental_id: str
    category: str
    amount_cents: int
    status: str
    payment_id: Optional[str]
    processor_refund_ref: Optional[str]
    available_after_cents: int


@dataclass(frozen=True)
class RefundOutcome:
    """What the rejection cascade did with one payment."""

    payment_id: str
    action: str
    amount_cents: int
    processor_refund_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RejectionSummary:
    rental_id: str
    outcomes: List[RefundOutcome] = field(default_factory=list)
    ledger_entries_created: int = 0
    plan_cancelled_id: Optional[str] = None
    charges_cancelled: int = 0

    @property
    def payments_processed(self) -> int:
        return len(self.outcomes)

    @property
    def total_refunded_cents(self) -> int:
        return sum(
            o.amount_cents
            for o in self.outcomes
            if o.action in (RefundAction.REFUNDED, RefundAction.RELEASED)
        )

    @property
    def manual_refunds_required(self) -> int:
        return sum(1 for o in self.outcomes if o.action == RefundAction.PENDING_MANUAL)
