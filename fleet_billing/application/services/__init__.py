"""Application services."""

from .checkout_service import CheckoutService
from .early_payoff_service import EarlyPayoffService
from .installment_processor import DueInstallmentProcessor
from .ledger_service import LedgerReconciliationService
from .notifications import NotificationDispatcher
from .plan_builder import InstallmentPlanBuilder
from .plan_service import PlanService
from .rejection_service import RentalRejectionService
from .reminder_service import InstallmentReminderService
from .settlement import InstallmentSettlement
from .tenant_context import (
    ProcessorFactory,
    TenantPaymentContextResolver,
    build_context,
    parse_mode,
)
from .vault_service import PaymentMethodVaultService

__all__ = [
    "CheckoutService",
    "EarlyPayoffService",
    "DueInstallmentProcessor",
    "LedgerReconciliationService",
    "NotificationDispatcher",
    "InstallmentPlanBuilder",
    "PlanService",
    "RentalRejectionService",
    "InstallmentReminderService",
    "InstallmentSettlement",
    "ProcessorFactory",
    "TenantPaymentContextResolver",
    "build_context",
    "parse_mode",
    "PaymentMethodVaultService",
]
