"""Value objects returned by the payment processor port."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Intent states after which the charge will never complete on its own.
FAILED_INTENT_STATUSES = frozenset({"requires_payment_method", "requires_action", "canceled"})


@dataclass(frozen=True)
class CheckoutLineItem:
    name: str
    amount_cents: int
    quantity: int = 1


@dataclass(frozen=True)
class CheckoutSessionRequest:
    """Everything needed to open a hosted checkout page."""

    customer_ref: str
    line_items: List[CheckoutLineItem]
    success_url: str
    cancel_url: str
    client_reference_id: str
    save_payment_method: bool = True
    metadata: Dict[str, str] = field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @property
    def amount_cents(self) -> int:
        return sum(item.amount_cents * item.quantity for item in self.line_items)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    paid: bool = False
    payment_intent_ref: Optional[str] = None
    payment_method_ref: Optional[str] = None
    customer_ref: Optional[str] = None


@dataclass(frozen=True)
class ChargeResult:
    """
    Outcome of an off-session charge the processor accepted.

    ``processing`` means the money is in flight; the intent settles later
    and must be looked up, never charged again.
    """

    intent_ref: str
    status: str
    amount_cents: int
    charge_ref: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def is_pending(self) -> bool:
        return not self.succeeded


@dataclass(frozen=True)
class PaymentIntentInfo:
    id: str
    status: str
    amount_cents: int = 0
    payment_method_ref: Optional[str] = None
    charge_ref: Optional[str] = None

    @property
    def requires_capture(self) -> bool:
        return self.status == "requires_capture"

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def failed(self) -> bool:
        return self.status in FAILED_INTENT_STATUSES


@dataclass(frozen=True)
class RefundResult:
    id: str
    status: str
    amount_cents: int


@dataclass(frozen=True)
class SetupIntentInfo:
    id: str
    client_secret: Optional[str]
    status: Optional[str] = None


@dataclass(frozen=True)
class CardDetails:
    """Safe-to-display summary of a stored card."""

    payment_method_ref: str
    customer_ref: Optional[str]
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "payment_method_id": self.payment_method_ref,
            "brand": self.brand,
            "last4": self.last4,
            "exp_month": self.exp_month,
            "exp_year": self.exp_year,
        }
