"""Customer payment profile entity."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class CustomerPaymentProfile:
    customer_id: str
    tenant_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    processor_customer_ref: Optional[str] = None
