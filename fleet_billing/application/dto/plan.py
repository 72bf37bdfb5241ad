"""Data transfer objects for installment plan operations."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from fleet_billing.domain.entities import PlanType


@dataclass(frozen=True)
class PlanRequest:
    """Input data for building an installment plan."""

    rental_id: str
    tenant_id: str
    customer_id: str
    upfront_base_cents: int
    total_installable_cents: int
    plan_type: PlanType
    number_of_installments: int
    start_date: date
    charge_first_upfront: bool = False
    first_installment_cents: Optional[int] = None
    what_gets_split: str = "rental_and_tax"
    grace_period_days: Optional[int] = None
    max_retry_attempts: Optional[int] = None
    retry_interval_days: Optional[int] = None

    def validate(self) -> List[str]:
        errors = []

        if not self.rental_id or not self.rental_id.strip():
            errors.append("rental_id is required")

        if not self.customer_id or not self.customer_id.strip():
            errors.append("customer_id is required")

        if self.upfront_base_cents < 0:
            errors.append("upfront_base_cents cannot be negative")

        for name in ("grace_period_days", "max_retry_attempts", "retry_interval_days"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"{name} cannot be negative")

        return errors


@dataclass(frozen=True)
class InstallmentDTO:
    """Single installment within a plan response."""

    installment_id: str
    installment_number: int
    due_date: str
    amount_cents: int
    status: str
    failure_count: int = 0
    last_failure_reason: Optional[str] = None
    paid_at: Optional[str] = None

    @classmethod
    def from_entity(cls, inst) -> "InstallmentDTO":
        return cls(
            installment_id=str(inst.id),
            installment_number=inst.installment_number,
            due_date=inst.due_date.isoformat(),
            amount_cents=inst.amount_cents,
            status=inst.status.value,
            failure_count=inst.failure_count,
            last_failure_reason=inst.last_failure_reason,
            paid_at=inst.paid_at.isoformat() + "Z" if inst.paid_at else None,
        )


@dataclass(frozen=True)
class PlanResponse:
    """Response data for an installment plan with installments."""

    plan_id: str
    rental_id: str
    customer_id: str
    plan_type: str
    status: str
    number_of_installments: int
    installment_amount_cents: int
    upfront_amount_cents: int
    upfront_paid: bool
    total_installable_cents: int
    total_paid_cents: int
    paid_installments: int
    next_due_date: Optional[str]
    has_payment_method: bool
    installments: List[InstallmentDTO]
    past_due_installments: int = 0
    past_due_cents: int = 0

    @classmethod
    def from_entity(cls, plan, today: Optional[date] = None) -> "PlanResponse":
        past_due = plan.overdue_installments(today or datetime.utcnow().date())
        return cls(
            plan_id=str(plan.id),
            rental_id=plan.rental_id,
            customer_id=plan.customer_id,
            plan_type=plan.plan_type.value,
            status=plan.status.value,
            number_of_installments=plan.number_of_installments,
            installment_amount_cents=plan.installment_amount_cents,
            upfront_amount_cents=plan.upfront_amount_cents,
            upfront_paid=plan.upfront_paid,
            total_installable_cents=plan.total_installable_cents,
            total_paid_cents=plan.total_paid_cents,
            paid_installments=plan.paid_installments,
            next_due_date=plan.next_due_date.isoformat() if plan.next_due_date else None,
            has_payment_method=bool(plan.processor_payment_method_ref),
            installments=[InstallmentDTO.from_entity(inst) for inst in plan.installments],
            past_due_installments=len(past_due),
            past_due_cents=sum(inst.amount_cents for inst in past_due),
        )
