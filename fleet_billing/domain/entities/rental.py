"""Rental-side entities touched by billing."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RentalStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VehicleStatus(str, Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    RENTED = "Rented"


class ChargeStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    CANCELLED = "Cancelled"


@dataclass
class Rental:
    id: str
    tenant_id: str
    customer_id: str
    vehicle_id: Optional[str] = None
    status: RentalStatus = RentalStatus.PENDING
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    payment_status: Optional[str] = None
    cancellation_reason: Optional[str] = None
