"""
Domain Interfaces (Ports)
"""

from .repositories import (
    CustomerRepository,
    LedgerRepository,
    NotificationRepository,
    PaymentRepository,
    PlanRepository,
    RentalRepository,
    TenantRepository,
)
from .clients import NotificationClient, PaymentProcessorClient

__all__ = [
    "CustomerRepository",
    "LedgerRepository",
    "NotificationRepository",
    "PaymentRepository",
    "PlanRepository",
    "RentalRepository",
    "TenantRepository",
    "NotificationClient",
    "PaymentProcessorClient",
]
