"""Ledger domain entities."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional
from uuid import uuid4


class LedgerEntryType(str, Enum):
    CHARGE = "Charge"
    REFUND = "Refund"


DEFAULT_LEDGER_CATEGORY = "Other"


@dataclass
class LedgerEntry:
    """
    A signed line on a rental's ledger.

    Charges are positive with ``remaining_cents`` counting down as they
    are paid; refunds are negative.
    """

    rental_id: str
    type: LedgerEntryType
    category: str
    amount_cents: int
    remaining_cents: int = 0
    customer_id: Optional[str] = None
    tenant_id: Optional[str] = None
    reference: Optional[str] = None
    entry_date: date = field(default_factory=date.today)
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def paid_cents(self) -> int:
        return self.amount_cents - self.remaining_cents


@dataclass(frozen=True)
class PaymentApplication:
    """How much of a payment settled a given ledger charge."""

    payment_id: str
    charge_entry_id: str
    amount_applied_cents: int
    category: str = DEFAULT_LEDGER_CATEGORY


@dataclass(frozen=True)
class RefundableBalance:
    """Paid-minus-refunded position of a rental's ledger category."""

    rental_id: str
    category: str
    total_charged_cents: int
    total_paid_cents: int
    total_refunded_cents: int

    @property
    def available_cents(self) -> int:
        return self.total_paid_cents - self.total_refunded_cents

    def to_dict(self) -> dict:
        return {
            "rental_id": self.rental_id,
            "category": self.category,
            "total_charged_cents": self.total_charged_cents,
            "total_paid_cents": self.total_paid_cents,
            "total_refunded_cents": self.total_refunded_cents,
            "available_for_refund_cents": self.available_cents,
        }
