"""Pydantic schemas for API request/response validation."""

from .checkout import (
    CheckoutConfirmRequestSchema,
    CheckoutConfirmResponseSchema,
    CheckoutRequestSchema,
    CheckoutResponseSchema,
    PlanOptionsSchema,
)
from .error import ErrorResponseSchema
from .payment import (
    CustomerActionSchema,
    EarlyPaymentResponseSchema,
    InstallmentResultSchema,
    PayoffResponseSchema,
    ProcessingSummarySchema,
    ReminderSummarySchema,
)
from .payment_method import (
    CardSchema,
    ConfirmPaymentMethodRequestSchema,
    PaymentMethodUpdateResponseSchema,
    SetupSessionRequestSchema,
    SetupSessionResponseSchema,
)
from .plan import (
    CancelPlanRequestSchema,
    InstallmentSchema,
    MarkPaidRequestSchema,
    PlanResponseSchema,
)
from .refund import (
    RefundableBalanceSchema,
    RefundOutcomeSchema,
    RefundRequestSchema,
    RefundResponseSchema,
    RejectionResponseSchema,
    RejectRentalRequestSchema,
)

__all__ = [
    "CheckoutConfirmRequestSchema",
    "CheckoutConfirmResponseSchema",
    "CheckoutRequestSchema",
    "CheckoutResponseSchema",
    "PlanOptionsSchema",
    "ErrorResponseSchema",
    "CustomerActionSchema",
    "EarlyPaymentResponseSchema",
    "InstallmentResultSchema",
    "PayoffResponseSchema",
    "ProcessingSummarySchema",
    "ReminderSummarySchema",
    "CardSchema",
    "ConfirmPaymentMethodRequestSchema",
    "PaymentMethodUpdateResponseSchema",
    "SetupSessionRequestSchema",
    "SetupSessionResponseSchema",
    "CancelPlanRequestSchema",
    "InstallmentSchema",
    "MarkPaidRequestSchema",
    "PlanResponseSchema",
    "RefundableBalanceSchema",
    "RefundOutcomeSchema",
    "RefundRequestSchema",
    "RefundResponseSchema",
    "RejectionResponseSchema",
    "RejectRentalRequestSchema",
]
