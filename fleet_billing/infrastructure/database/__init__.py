"""Database infrastructure."""

from .connection import (
    DatabaseSessionManager,
    db_manager,
    get_db_session,
    normalize_database_url,
)
from .models import (
    Base,
    CustomerModel,
    InstallmentNotificationModel,
    InstallmentPlanModel,
    LedgerEntryModel,
    PaymentApplicationModel,
    PaymentModel,
    RentalChargeModel,
    RentalModel,
    ScheduledInstallmentModel,
    TenantModel,
    VehicleModel,
)

__all__ = [
    "get_db_session",
    "DatabaseSessionManager",
    "db_manager",
    "normalize_database_url",
    "Base",
    "CustomerModel",
    "InstallmentNotificationModel",
    "InstallmentPlanModel",
    "LedgerEntryModel",
    "PaymentApplicationModel",
    "PaymentModel",
    "RentalChargeModel",
    "RentalModel",
    "ScheduledInstallmentModel",
    "TenantModel",
    "VehicleModel",
]
