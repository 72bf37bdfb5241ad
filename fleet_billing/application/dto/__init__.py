"""Data Transfer Objects for application layer."""

from .checkout import CheckoutConfirmation, CheckoutRequest, CheckoutResponse
from .payment_method import CardDTO, PaymentMethodUpdateResponse, SetupSessionResponse
from .plan import InstallmentDTO, PlanRequest, PlanResponse
from .processing import (
    EarlyPaymentResponse,
    InstallmentResult,
    PayoffResponse,
    ProcessingSummary,
    ReminderSummary,
)
from .refund import (
    RefundAction,
    RefundOutcome,
    RefundRequest,
    RefundResponse,
    RejectionSummary,
)

__all__ = [
    "CheckoutConfirmation",
    "CheckoutRequest",
    "CheckoutResponse",
    "CardDTO",
    "PaymentMethodUpdateResponse",
    "SetupSessionResponse",
    "InstallmentDTO",
    "PlanRequest",
    "PlanResponse",
    "EarlyPaymentResponse",
    "InstallmentResult",
    "PayoffResponse",
    "ProcessingSummary",
    "ReminderSummary",
    "RefundAction",
    "RefundOutcome",
    "RefundRequest",
    "RefundResponse",
    "RejectionSummary",
]
