"""Tenant payment context entities."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PaymentMode(str, Enum):
    TEST = "test"
    LIVE = "live"


@dataclass(frozen=True)
class TenantRecord:
    """Tenant payment settings as stored; every field may be unset."""

    tenant_id: str
    processor_mode: Optional[str] = None
    merchant_account_id: Optional[str] = None
    onboarding_complete: bool = False


@dataclass(frozen=True)
class TenantPaymentContext:
    """Which processor mode and merchant account a tenant's charges go through."""

    tenant_id: Optional[str]
    mode: PaymentMode
    merchant_account_id: Optional[str]
    onboarding_complete: bool

    @property
    def is_live(self) -> bool:
        return self.mode == PaymentMode.LIVE

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "mode": self.mode.value,
            "merchant_account_id": self.merchant_account_id,
            "onboarding_complete": self.onboarding_complete,
        }
