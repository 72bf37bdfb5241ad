"""Data transfer objects for stored payment methods."""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class CardDTO:
    payment_method_id: str
    brand: Optional[str]
    last4: Optional[str]
    exp_month: Optional[int]
    exp_year: Optional[int]

    @classmethod
    def from_details(cls, card) -> "CardDTO":
        return cls(
            payment_method_id=card.payment_method_ref,
            brand=card.brand,
            last4=card.last4,
            exp_month=card.exp_month,
            exp_year=card.exp_year,
        )


@dataclass(frozen=True)
class SetupSessionResponse:
    customer_id: str
    setup_intent_id: str
    client_secret: Optional[str]
    processor_customer_id: str


@dataclass(frozen=True)
class PaymentMethodUpdateResponse:
    customer_id: str
    payment_method_id: str
    updated_plan_ids: List[str]
    card: CardDTO
