"""Domain Exceptions - Business rule violations and domain errors."""

from .base import ConsistencyException, DomainException, NotFoundException
from .plan import (
    InstallmentNotFoundException,
    InstallmentNotPayableException,
    InvalidInstallmentCountException,
    InvalidInstallmentTransitionException,
    InvalidPlanAmountException,
    InvalidPlanRequestException,
    PlanAlreadyExistsException,
    PlanNotFoundException,
)
from .payment import (
    CardDeclinedException,
    CheckoutNotConfirmableException,
    PaymentMethodMissingException,
    PaymentMethodOwnershipException,
    PaymentNotCompletedException,
    PaymentNotFoundException,
    PaymentPendingException,
    ProcessorConfigurationException,
    ProcessorException,
    ProcessorInvalidRequestException,
    ProcessorRateLimitException,
    ProcessorUnavailableException,
)
from .refund import (
    HoldNotRefundableException,
    InvalidRefundRequestException,
    NoRefundableBalanceException,
    RefundExceedsAvailableException,
)
from .rental import CustomerNotFoundException, RentalNotFoundException

__all__ = [
    "DomainException",
    "NotFoundException",
    "ConsistencyException",
    "PlanNotFoundException",
    "InstallmentNotFoundException",
    "PlanAlreadyExistsException",
    "InvalidInstallmentCountException",
    "InvalidPlanAmountException",
    "InvalidPlanRequestException",
    "InvalidInstallmentTransitionException",
    "InstallmentNotPayableException",
    "ProcessorConfigurationException",
    "ProcessorException",
    "CardDeclinedException",
    "CheckoutNotConfirmableException",
    "ProcessorRateLimitException",
    "ProcessorUnavailableException",
    "ProcessorInvalidRequestException",
    "PaymentNotCompletedException",
    "PaymentNotFoundException",
    "PaymentPendingException",
    "PaymentMethodMissingException",
    "PaymentMethodOwnershipException",
    "RefundExceedsAvailableException",
    "NoRefundableBalanceException",
    "InvalidRefundRequestException",
    "HoldNotRefundableException",
    "RentalNotFoundException",
    "CustomerNotFoundException",
]
