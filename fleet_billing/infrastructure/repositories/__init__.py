"""Repository implementations."""

from .customer_repository import PostgresCustomerRepository, PostgresTenantRepository
from .ledger_repository import PostgresLedgerRepository
from .notification_repository import PostgresNotificationRepository
from .payment_repository import PostgresPaymentRepository
from .plan_repository import PostgresPlanRepository
from .rental_repository import PostgresRentalRepository

__all__ = [
    "PostgresCustomerRepository",
    "PostgresTenantRepository",
    "PostgresLedgerRepository",
    "PostgresNotificationRepository",
    "PostgresPaymentRepository",
    "PostgresPlanRepository",
    "PostgresRentalRepository",
]
