"""Domain Entities - Core business objects."""

from .customer import CustomerPaymentProfile
from .ledger import (
    DEFAULT_LEDGER_CATEGORY,
    LedgerEntry,
    LedgerEntryType,
    PaymentApplication,
    RefundableBalance,
)
from .notification import InstallmentNotification, NotificationType
from .payment import (
    CaptureStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RefundStatus,
)
from .plan import (
    CHARGEABLE_PLAN_STATUSES,
    INSTALLMENT_TRANSITIONS,
    OUTSTANDING_INSTALLMENT_STATUSES,
    PLAN_TRANSITIONS,
    TERMINAL_PLAN_STATUSES,
    InstallmentCandidate,
    InstallmentPlan,
    InstallmentStatus,
    PlanConfig,
    PlanStatus,
    PlanType,
    ScheduledInstallment,
    can_transition,
    ensure_transition,
    plan_sources_for,
    sources_for,
)
from .processor import (
    FAILED_INTENT_STATUSES,
    CardDetails,
    ChargeResult,
    CheckoutLineItem,
    CheckoutSession,
    CheckoutSessionRequest,
    PaymentIntentInfo,
    RefundResult,
    SetupIntentInfo,
)
from .rental import ApprovalStatus, ChargeStatus, Rental, RentalStatus, VehicleStatus
from .tenant import PaymentMode, TenantPaymentContext, TenantRecord

__all__ = [
    "CustomerPaymentProfile",
    "DEFAULT_LEDGER_CATEGORY",
    "LedgerEntry",
    "LedgerEntryType",
    "PaymentApplication",
    "RefundableBalance",
    "InstallmentNotification",
    "NotificationType",
    "CaptureStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "RefundStatus",
    "CHARGEABLE_PLAN_STATUSES",
    "INSTALLMENT_TRANSITIONS",
    "OUTSTANDING_INSTALLMENT_STATUSES",
    "PLAN_TRANSITIONS",
    "TERMINAL_PLAN_STATUSES",
    "InstallmentCandidate",
    "InstallmentPlan",
    "InstallmentStatus",
    "PlanConfig",
    "PlanStatus",
    "PlanType",
    "ScheduledInstallment",
    "can_transition",
    "ensure_transition",
    "plan_sources_for",
    "sources_for",
    "FAILED_INTENT_STATUSES",
    "CardDetails",
    "ChargeResult",
    "CheckoutLineItem",
    "CheckoutSession",
    "CheckoutSessionRequest",
    "PaymentIntentInfo",
    "RefundResult",
    "SetupIntentInfo",
    "ApprovalStatus",
    "ChargeStatus",
    "Rental",
    "RentalStatus",
    "VehicleStatus",
    "PaymentMode",
    "TenantPaymentContext",
    "TenantRecord",
]
