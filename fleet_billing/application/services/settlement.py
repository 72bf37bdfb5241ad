"""
Installment settlement.

The single place where installments become paid or failed and where plan
totals and plan status follow from that.
"""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from fleet_billing.domain.entities import (
    CaptureStatus,
    ChargeResult,
    InstallmentPlan,
    InstallmentStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    PlanStatus,
    ScheduledInstallment,
)
from fleet_billing.domain.interfaces import PaymentRepository, PlanRepository

logger = structlog.get_logger(__name__)

MAX_FAILURE_REASON_LENGTH = 500


class InstallmentSettlement:
    """Applies charge outcomes to installments and their plan."""

    def __init__(self, plan_repository: PlanRepository, payment_repository: PaymentRepository):
        self._plan_repo = plan_repository
        self._payment_repo = payment_repository

    async def mark_paid(
        self,
        installment: ScheduledInstallment,
        payment_id: str,
        intent_ref: Optional[str] = None,
        charge_ref: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """
        Settle a claimed installment as paid.

        Plan totals are incremented only when this call actually moved the
        installment, so settling twice counts once.

        Returns:
            True if the installment moved to paid
        """
        moved = await self._plan_repo.transition_installment(
            installment.id,
            InstallmentStatus.PAID,
            paid_at=paid_at or datetime.utcnow(),
            payment_id=payment_id,
            processor_payment_ref=intent_ref,
            processor_charge_ref=charge_ref,
        )

        if not moved:
            logger.info(
                "installment_already_settled",
                installment_id=installment.id,
                plan_id=installment.plan_id,
            )
            return False

        await self._plan_repo.record_installment_paid(installment.plan_id, installment.amount_cents)
        await self.refresh_plan(installment.plan_id)

        logger.info(
            "installment_paid",
            installment_id=installment.id,
            plan_id=installment.plan_id,
            installment_number=installment.installment_number,
            amount_cents=installment.amount_cents,
            payment_id=payment_id,
        )
        return True

    async def mark_failed(
        self,
        installment: ScheduledInstallment,
        reason: str,
        attempted_at: datetime,
        max_retry_attempts: int,
    ) -> bool:
        """
        Settle a claimed installment as failed.

        Returns:
            True if this failure exhausted the installment's retries
        """
        failure_count = installment.failure_count + 1

        moved = await self._plan_repo.transition_installment(
            installment.id,
            InstallmentStatus.FAILED,
            failure_count=failure_count,
            last_failure_reason=reason[:MAX_FAILURE_REASON_LENGTH],
            last_attempted_at=attempted_at,
        )
        if not moved:
            return False

        exhausted = failure_count >= max_retry_attempts
        if exhausted:
            flipped = await self._plan_repo.transition_plan(installment.plan_id, PlanStatus.OVERDUE)
            if flipped:
                logger.warning(
                    "plan_overdue",
                    plan_id=installment.plan_id,
                    installment_id=installment.id,
                    failure_count=failure_count,
                )

        return exhausted

    async def record_charge(
        self,
        installment: ScheduledInstallment,
        charge: ChargeResult,
        idempotency_key: Optional[str] = None,
        target_categories: Optional[List[str]] = None,
    ) -> Tuple[Payment, bool]:
        """
        Record a successful charge and settle the installment it paid.

        An existing Payment for the same intent or idempotency key is
        reused, so a replayed charge never creates a second row.

        Returns:
            The payment and whether the installment moved to paid
        """
        payment = await self._payment_repo.get_by_intent_ref(charge.intent_ref)
        if payment is None and idempotency_key:
            payment = await self._payment_repo.get_by_idempotency_key(idempotency_key)

        if payment is None:
            payment = await self._payment_repo.save(
                Payment(
                    rental_id=installment.rental_id,
                    customer_id=installment.customer_id,
                    tenant_id=installment.tenant_id,
                    amount_cents=charge.amount_cents or installment.amount_cents,
                    payment_type=PaymentType.PAYMENT,
                    status=PaymentStatus.APPLIED,
                    capture_status=CaptureStatus.CAPTURED,
                    processor_intent_ref=charge.intent_ref,
                    idempotency_key=idempotency_key,
                    target_categories=list(target_categories or ["Rental"]),
                    notes=f"Installment {installment.installment_number}",
                )
            )

        moved = await self.mark_paid(
            installment,
            payment_id=payment.id,
            intent_ref=charge.intent_ref,
            charge_ref=charge.charge_ref,
        )
        return payment, moved

    async def refresh_plan(self, plan_id: str) -> Optional[InstallmentPlan]:
        """
        Bring plan status and next due date in line with its installments.

        A plan completes once every installment is paid. An overdue plan
        returns to active once no installment has exhausted its retries.
        """
        plan = await self._plan_repo.get_by_id(plan_id)
        if plan is None or plan.is_terminal:
            return plan

        if plan.all_paid:
            await self._plan_repo.transition_plan(plan.id, PlanStatus.COMPLETED, next_due_date=None)
            logger.info("plan_completed", plan_id=plan.id, rental_id=plan.rental_id)
            return await self._plan_repo.get_by_id(plan_id)

        outstanding = plan.outstanding_installments
        next_due = min(inst.due_date for inst in outstanding) if outstanding else None

        if plan.status == PlanStatus.OVERDUE and not plan.has_exhausted_failures():
            await self._plan_repo.transition_plan(
                plan.id, PlanStatus.ACTIVE, next_due_date=next_due
            )
            logger.info("plan_reactivated", plan_id=plan.id)
        else:
            await self._plan_repo.update_plan(plan.id, next_due_date=next_due)

        return await self._plan_repo.get_by_id(plan_id)
