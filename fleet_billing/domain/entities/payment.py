"""Payment record domain entities."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    APPLIED = "Applied"
    REFUNDED = "Refunded"
    PARTIAL_REFUND = "PartialRefund"
    CANCELLED = "Cancelled"


class CaptureStatus(str, Enum):
    REQUIRES_CAPTURE = "requires_capture"
    CAPTURED = "captured"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class RefundStatus(str, Enum):
    NONE = "none"
    COMPLETED = "completed"
    PENDING_MANUAL = "pending_manual"


class PaymentType(str, Enum):
    INITIAL_FEE = "InitialFee"
    PAYMENT = "Payment"
    DEPOSIT = "Deposit"


class PaymentMethod(str, Enum):
    CARD = "Card"
    CASH = "Cash"


TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.REFUNDED, PaymentStatus.CANCELLED})


@dataclass
class Payment:
    """Money received (or held) against a rental."""

    rental_id: str
    customer_id: str
    tenant_id: str
    amount_cents: int
    payment_type: PaymentType
    method: PaymentMethod = PaymentMethod.CARD
    status: PaymentStatus = PaymentStatus.PENDING
    capture_status: Optional[CaptureStatus] = None
    refund_status: RefundStatus = RefundStatus.NONE
    processor_session_ref: Optional[str] = None
    processor_intent_ref: Optional[str] = None
    processor_refund_ref: Optional[str] = None
    idempotency_key: Optional[str] = None
    refund_amount_cents: int = 0
    refund_reason: Optional[str] = None
    refund_processed_at: Optional[datetime] = None
    target_categories: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

    @property
    def refundable_cents(self) -> int:
        return max(self.amount_cents - self.refund_amount_cents, 0)

    def to_dict(self) -> dict:
        return {
            "payment_id": self.id,
            "rental_id": self.rental_id,
            "amount_cents": self.amount_cents,
            "payment_type": self.payment_type.value,
            "status": self.status.value,
            "capture_status": self.capture_status.value if self.capture_status else None,
            "refund_status": self.refund_status.value,
            "refund_amount_cents": self.refund_amount_cents,
        }
