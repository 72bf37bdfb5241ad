"""Installment plan domain entities and the installment state machine."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

from fleet_billing.domain.exceptions import InvalidInstallmentTransitionException


class PlanType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PlanStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InstallmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_PLAN_STATUSES: FrozenSet[PlanStatus] = frozenset(
    {PlanStatus.COMPLETED, PlanStatus.CANCELLED}
)

# Plans whose installments may be charged.
CHARGEABLE_PLAN_STATUSES: FrozenSet[PlanStatus] = frozenset(
    {PlanStatus.ACTIVE, PlanStatus.OVERDUE}
)

# Installments that still owe money and are not mid-charge.
OUTSTANDING_INSTALLMENT_STATUSES: FrozenSet[InstallmentStatus] = frozenset(
    {InstallmentStatus.SCHEDULED, InstallmentStatus.FAILED}
)

INSTALLMENT_TRANSITIONS: Dict[InstallmentStatus, FrozenSet[InstallmentStatus]] = {
    InstallmentStatus.SCHEDULED: frozenset(
        {InstallmentStatus.PROCESSING, InstallmentStatus.CANCELLED}
    ),
    InstallmentStatus.PROCESSING: frozenset(
        {InstallmentStatus.PAID, InstallmentStatus.FAILED, InstallmentStatus.CANCELLED}
    ),
    InstallmentStatus.FAILED: frozenset(
        {InstallmentStatus.PROCESSING, InstallmentStatus.CANCELLED}
    ),
    InstallmentStatus.PAID: frozenset(),
    InstallmentStatus.CANCELLED: frozenset(),
}

PLAN_TRANSITIONS: Dict[PlanStatus, FrozenSet[PlanStatus]] = {
    PlanStatus.PENDING: frozenset({PlanStatus.ACTIVE, PlanStatus.CANCELLED}),
    PlanStatus.ACTIVE: frozenset(
        {PlanStatus.OVERDUE, PlanStatus.COMPLETED, PlanStatus.CANCELLED}
    ),
    PlanStatus.OVERDUE: frozenset(
        {PlanStatus.ACTIVE, PlanStatus.COMPLETED, PlanStatus.CANCELLED}
    ),
    PlanStatus.COMPLETED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}


def can_transition(current: InstallmentStatus, target: InstallmentStatus) -> bool:
    return target in INSTALLMENT_TRANSITIONS[current]


def sources_for(target: InstallmentStatus) -> FrozenSet[InstallmentStatus]:
    """All installment states that may legally move to ``target``."""
    return frozenset(
        status for status, targets in INSTALLMENT_TRANSITIONS.items() if target in targets
    )


def plan_sources_for(target: PlanStatus) -> FrozenSet[PlanStatus]:
    """All plan states that may legally move to ``target``."""
    return frozenset(
        status for status, targets in PLAN_TRANSITIONS.items() if target in targets
    )


def ensure_transition(current: InstallmentStatus, target: InstallmentStatus) -> None:
    if not can_transition(current, target):
        raise InvalidInstallmentTransitionException(current.value, target.value)


# Ledger categories each split mode charges installments against.
SPLIT_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "rental_only": ("Rental",),
    "rental_and_tax": ("Rental", "Tax"),
    "everything": ("Rental", "Tax", "Fees"),
}


@dataclass
class PlanConfig:
    """Per-plan billing knobs, stored with the plan."""

    charge_first_upfront: bool = False
    what_gets_split: str = "rental_and_tax"
    grace_period_days: int = 0
    max_retry_attempts: int = 3
    retry_interval_days: int = 1

    @property
    def split_categories(self) -> List[str]:
        return list(SPLIT_CATEGORIES.get(self.what_gets_split, ("Rental",)))

    def to_dict(self) -> dict:
        return {
            "charge_first_upfront": self.charge_first_upfront,
            "what_gets_split": self.what_gets_split,
            "grace_period_days": self.grace_period_days,
            "max_retry_attempts": self.max_retry_attempts,
            "retry_interval_days": self.retry_interval_days,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PlanConfig":
        data = data or {}
        defaults = cls()
        return cls(
            charge_first_upfront=bool(data.get("charge_first_upfront", defaults.charge_first_upfront)),
            what_gets_split=data.get("what_gets_split", defaults.what_gets_split),
            grace_period_days=int(data.get("grace_period_days", defaults.grace_period_days)),
            max_retry_attempts=int(data.get("max_retry_attempts", defaults.max_retry_attempts)),
            retry_interval_days=int(data.get("retry_interval_days", defaults.retry_interval_days)),
        )


@dataclass
class ScheduledInstallment:
    """A single dated charge within an installment plan."""

    plan_id: str
    rental_id: str
    customer_id: str
    tenant_id: str
    installment_number: int
    amount_cents: int
    due_date: date
    id: str = field(default_factory=lambda: str(uuid4()))
    status: InstallmentStatus = InstallmentStatus.SCHEDULED
    failure_count: int = 0
    last_failure_reason: Optional[str] = None
    last_attempted_at: Optional[datetime] = None
    processor_payment_ref: Optional[str] = None
    processor_charge_ref: Optional[str] = None
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_INSTALLMENT_STATUSES

    @property
    def idempotency_key(self) -> str:
        """Processor idempotency key for the current charge attempt."""
        return f"installment-{self.id}-attempt-{self.failure_count}"

    def retries_exhausted(self, max_retry_attempts: int) -> bool:
        return self.failure_count >= max_retry_attempts

    def is_retry_eligible(
        self,
        now: datetime,
        max_retry_attempts: int,
        retry_interval_days: int,
    ) -> bool:
        """
        Whether a failed installment may be charged again.

        Eligible when it has attempts left and at least
        ``retry_interval_days`` have elapsed since the last attempt.
        """
        if self.status != InstallmentStatus.FAILED:
            return False
        if self.retries_exhausted(max_retry_attempts):
            return False
        if self.last_attempted_at is None:
            return True
        return now - self.last_attempted_at >= timedelta(days=retry_interval_days)

    def is_past_grace(self, today: date, grace_period_days: int) -> bool:
        return today > self.due_date + timedelta(days=grace_period_days)

    def to_dict(self) -> dict:
        return {
            "installment_id": self.id,
            "installment_number": self.installment_number,
            "due_date": self.due_date.isoformat(),
            "amount_cents": self.amount_cents,
            "status": self.status.value,
            "failure_count": self.failure_count,
            "last_failure_reason": self.last_failure_reason,
            "paid_at": self.paid_at.isoformat() + "Z" if self.paid_at else None,
        }


@dataclass
class InstallmentPlan:
    """An installment plan splitting a rental balance into dated charges."""

    rental_id: str
    tenant_id: str
    customer_id: str
    plan_type: PlanType
    number_of_installments: int
    installment_amount_cents: int
    upfront_amount_cents: int
    total_installable_cents: int
    config: PlanConfig = field(default_factory=PlanConfig)
    installments: List[ScheduledInstallment] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))
    status: PlanStatus = PlanStatus.PENDING
    paid_installments: int = 0
    total_paid_cents: int = 0
    upfront_paid: bool = False
    upfront_payment_id: Optional[str] = None
    processor_customer_ref: Optional[str] = None
    processor_payment_method_ref: Optional[str] = None
    next_due_date: Optional[date] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES

    @property
    def is_chargeable(self) -> bool:
        return self.status in CHARGEABLE_PLAN_STATUSES

    @property
    def outstanding_installments(self) -> List[ScheduledInstallment]:
        return sorted(
            (inst for inst in self.installments if inst.is_outstanding),
            key=lambda inst: inst.installment_number,
        )

    @property
    def outstanding_cents(self) -> int:
        return sum(inst.amount_cents for inst in self.outstanding_installments)

    @property
    def all_paid(self) -> bool:
        return bool(self.installments) and all(
            inst.status == InstallmentStatus.PAID for inst in self.installments
        )

    def get_installment(self, installment_number: int) -> Optional[ScheduledInstallment]:
        for inst in self.installments:
            if inst.installment_number == installment_number:
                return inst
        return None

    def has_exhausted_failures(self) -> bool:
        return any(
            inst.status == InstallmentStatus.FAILED
            and inst.retries_exhausted(self.config.max_retry_attempts)
            for inst in self.installments
        )

    def overdue_installments(self, today: date) -> List[ScheduledInstallment]:
        """Unpaid installments past their due date plus the grace period."""
        return [
            inst
            for inst in self.outstanding_installments
            if inst.is_past_grace(today, self.config.grace_period_days)
        ]

    def to_dict(self) -> dict:
        return {
            "plan_id": self.id,
            "rental_id": self.rental_id,
            "customer_id": self.customer_id,
            "plan_type": self.plan_type.value,
            "status": self.status.value,
            "number_of_installments": self.number_of_installments,
            "installment_amount_cents": self.installment_amount_cents,
            "total_installable_cents": self.total_installable_cents,
            "total_paid_cents": self.total_paid_cents,
            "paid_installments": self.paid_installments,
            "installments": [inst.to_dict() for inst in self.installments],
        }


@dataclass(frozen=True)
class InstallmentCandidate:
    """An installment selected for charging, with the plan data the charge needs."""

    installment: ScheduledInstallment
    plan_status: PlanStatus
    config: PlanConfig
    processor_customer_ref: Optional[str]
    processor_payment_method_ref: Optional[str]
