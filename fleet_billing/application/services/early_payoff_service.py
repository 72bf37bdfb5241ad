"""Early payment of single installments and payoff of whole plans."""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

import structlog

from fleet_billing.core.metrics import record_installment_charge
from fleet_billing.domain.entities import (
    CaptureStatus,
    ChargeResult,
    InstallmentPlan,
    InstallmentStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    ScheduledInstallment,
)
from fleet_billing.domain.exceptions import (
    DomainException,
    InstallmentNotFoundException,
    InstallmentNotPayableException,
    PaymentMethodMissingException,
    PaymentPendingException,
    PlanNotFoundException,
)
from fleet_billing.domain.interfaces import PaymentRepository, PlanRepository
from fleet_billing.application.dto import EarlyPaymentResponse, PayoffResponse

from .notifications import NotificationDispatcher
from .settlement import InstallmentSettlement
from .tenant_context import ProcessorFactory, TenantPaymentContextResolver

logger = structlog.get_logger(__name__)

NOT_PAYABLE_MESSAGES = {
    InstallmentStatus.PAID: "This installment has already been paid",
    InstallmentStatus.PROCESSING: "This installment is currently being processed",
    InstallmentStatus.CANCELLED: "This installment has been cancelled",
}


class EarlyPayoffService:
    """
    Customer-initiated payments ahead of the schedule.

    Installments are claimed before the charge exactly like the scheduled
    processor does. A failed charge releases the claim, putting each
    installment back where it was. A charge the processor accepted but has
    not settled keeps the claim and stores the intent on every claimed
    installment; the installment run resolves it later.
    """

    def __init__(
        self,
        plan_repository: PlanRepository,
        payment_repository: PaymentRepository,
        context_resolver: TenantPaymentContextResolver,
        settlement: InstallmentSettlement,
        notifier: NotificationDispatcher,
        processor_factory: ProcessorFactory,
    ):
        self._plan_repo = plan_repository
        self._payment_repo = payment_repository
        self._context_resolver = context_resolver
        self._settlement = settlement
        self._notifier = notifier
        self._processor_factory = processor_factory

    async def pay_installment(
        self,
        customer_id: str,
        installment_id: str,
        now: Optional[datetime] = None,
    ) -> EarlyPaymentResponse:
        """
        Charge one scheduled or failed installment now.

        Raises:
            InstallmentNotFoundException: If the installment is not the customer's
            InstallmentNotPayableException: If it is paid, processing,
                cancelled, or its plan is not active or overdue
            PaymentMethodMissingException: If no card is on file
            PaymentPendingException: If the charge is accepted but not settled
            ProcessorException: If the charge fails
        """
        now = now or datetime.utcnow()

        installment = await self._plan_repo.get_installment(installment_id)
        if installment is None or installment.customer_id != customer_id:
            raise InstallmentNotFoundException(installment_id)

        plan = await self._get_payable_plan(installment.plan_id, customer_id)
        self._ensure_payable(installment)
        self._ensure_payment_method(plan)

        log = logger.bind(installment_id=installment.id, plan_id=plan.id)

        claimed = await self._claim_all(plan, [installment], now)
        key = f"early-{installment.id}-{now:%Y%m%d%H%M%S}"

        charge = await self._charge_or_release(
            plan,
            claimed,
            installment.amount_cents,
            f"Early payment of installment {installment.installment_number}",
            key,
            "early",
            log,
        )
        if charge.is_pending:
            await self._hold_pending(claimed, charge, "early", log)

        try:
            payment, _ = await self._settlement.record_charge(
                installment,
                charge,
                idempotency_key=key,
                target_categories=plan.config.split_categories,
            )
            await self._plan_repo.commit()
        except Exception:
            await self._keep_charge_ref(claimed, charge.intent_ref, log)
            raise

        record_installment_charge("early", True, installment.amount_cents)
        log.info("installment_paid_early", amount_cents=installment.amount_cents, payment_id=payment.id)

        await self._notifier.installment_paid(installment, payment.id)

        return EarlyPaymentResponse(
            installment_id=installment.id,
            payment_id=payment.id,
            amount_cents=installment.amount_cents,
            processor_ref=charge.intent_ref,
        )

    async def pay_remaining(
        self,
        customer_id: str,
        plan_id: str,
        now: Optional[datetime] = None,
    ) -> PayoffResponse:
        """
        Pay off every outstanding installment of a plan with one charge.

        Raises:
            PlanNotFoundException: If the plan is not the customer's
            InstallmentNotPayableException: If any installment is mid-charge,
                nothing is left to pay, or the plan is not active or overdue
            PaymentMethodMissingException: If no card is on file
            PaymentPendingException: If the charge is accepted but not settled
            ProcessorException: If the charge fails
        """
        now = now or datetime.utcnow()

        plan = await self._get_payable_plan(plan_id, customer_id)

        if any(inst.status == InstallmentStatus.PROCESSING for inst in plan.installments):
            raise InstallmentNotPayableException(
                "A payment for this plan is currently being processed"
            )

        remaining = plan.outstanding_installments
        if not remaining:
            raise InstallmentNotPayableException("No remaining installments to pay")

        self._ensure_payment_method(plan)

        log = logger.bind(plan_id=plan.id, rental_id=plan.rental_id)

        claimed = await self._claim_all(plan, remaining, now)
        total_cents = sum(inst.amount_cents for inst in remaining)
        key = f"payoff-{plan.id}-{now:%Y%m%d%H%M%S}"

        charge = await self._charge_or_release(
            plan,
            claimed,
            total_cents,
            f"Payoff of {len(remaining)} remaining installments",
            key,
            "payoff",
            log,
        )
        if charge.is_pending:
            await self._hold_pending(claimed, charge, "payoff", log)

        try:
            payment = await self._payment_repo.save(
                Payment(
                    rental_id=plan.rental_id,
                    customer_id=plan.customer_id,
                    tenant_id=plan.tenant_id,
                    amount_cents=total_cents,
                    payment_type=PaymentType.PAYMENT,
                    status=PaymentStatus.APPLIED,
                    capture_status=CaptureStatus.CAPTURED,
                    processor_intent_ref=charge.intent_ref,
                    idempotency_key=key,
                    target_categories=plan.config.split_categories,
                    notes=f"Payoff of plan {plan.id}",
                )
            )

            for inst in remaining:
                await self._settlement.mark_paid(
                    inst,
                    payment_id=payment.id,
                    intent_ref=charge.intent_ref,
                    charge_ref=charge.charge_ref,
                )
            await self._plan_repo.commit()
        except Exception:
            await self._keep_charge_ref(claimed, charge.intent_ref, log)
            raise

        record_installment_charge("payoff", True, total_cents)

        plan = await self._plan_repo.get_by_id(plan.id)

        log.info(
            "plan_paid_off",
            amount_cents=total_cents,
            installments_paid=len(remaining),
            payment_id=payment.id,
            plan_status=plan.status.value,
        )

        return PayoffResponse(
            plan_id=plan.id,
            payment_id=payment.id,
            amount_cents=total_cents,
            installments_paid=len(remaining),
            plan_status=plan.status.value,
            processor_ref=charge.intent_ref,
        )

    async def _claim_all(
        self,
        plan: InstallmentPlan,
        installments: List[ScheduledInstallment],
        now: datetime,
    ) -> List[Tuple[ScheduledInstallment, InstallmentStatus]]:
        claimed: List[Tuple[ScheduledInstallment, InstallmentStatus]] = []

        for inst in installments:
            if not await self._plan_repo.claim_installment(inst.id, inst.status, now):
                await self._release(claimed, "Payment aborted: installment claimed concurrently")
                await self._plan_repo.commit()
                raise InstallmentNotPayableException(
                    NOT_PAYABLE_MESSAGES[InstallmentStatus.PROCESSING]
                )
            claimed.append((inst, inst.status))

        await self._plan_repo.commit()
        return claimed

    async def _charge_or_release(
        self,
        plan: InstallmentPlan,
        claimed: List[Tuple[ScheduledInstallment, InstallmentStatus]],
        amount_cents: int,
        description: str,
        idempotency_key: str,
        trigger: str,
        log,
    ) -> ChargeResult:
        metadata: Dict[str, str] = {
            "plan_id": plan.id,
            "rental_id": plan.rental_id,
            "tenant_id": plan.tenant_id,
            "installment_ids": ",".join(inst.id for inst, _ in claimed),
        }

        try:
            context = await self._context_resolver.resolve(plan.tenant_id)
            processor = self._processor_factory(context)
            return await processor.charge_off_session(
                customer_ref=plan.processor_customer_ref,
                payment_method_ref=plan.processor_payment_method_ref,
                amount_cents=amount_cents,
                description=description,
                idempotency_key=idempotency_key,
                metadata=metadata,
            )
        except Exception as exc:
            reason = exc.message if isinstance(exc, DomainException) else "Unexpected error while charging"
            await self._release(claimed, reason)
            await self._plan_repo.commit()
            record_installment_charge(trigger, False)
            log.warning("early_payment_failed", reason=reason, amount_cents=amount_cents)
            raise

    async def _hold_pending(
        self,
        claimed: List[Tuple[ScheduledInstallment, InstallmentStatus]],
        charge: ChargeResult,
        trigger: str,
        log,
    ) -> None:
        for inst, _ in claimed:
            await self._plan_repo.record_processor_ref(inst.id, charge.intent_ref)
        await self._plan_repo.commit()

        record_installment_charge(trigger, False, pending=True)
        log.info("early_payment_pending", intent_ref=charge.intent_ref, status=charge.status)
        raise PaymentPendingException(charge.intent_ref)

    async def _keep_charge_ref(
        self,
        claimed: List[Tuple[ScheduledInstallment, InstallmentStatus]],
        intent_ref: str,
        log,
    ) -> None:
        """Leave charged installments processing with their intent after a failed settlement."""
        await self._plan_repo.rollback()
        try:
            for inst, _ in claimed:
                await self._plan_repo.record_processor_ref(inst.id, intent_ref)
            await self._plan_repo.commit()
        except Exception as exc:
            await self._plan_repo.rollback()
            log.exception("early_payment_ref_not_saved", intent_ref=intent_ref, error=str(exc))
            return

        log.error("early_payment_settlement_deferred", intent_ref=intent_ref)

    async def _release(
        self,
        claimed: List[Tuple[ScheduledInstallment, InstallmentStatus]],
        reason: str,
    ) -> None:
        for inst, prior_status in claimed:
            await self._plan_repo.release_installment_claim(inst.id, prior_status, reason)

    async def _get_payable_plan(self, plan_id: str, customer_id: str) -> InstallmentPlan:
        plan = await self._plan_repo.get_by_id(plan_id)
        if plan is None or plan.customer_id != customer_id:
            raise PlanNotFoundException(plan_id)

        if not plan.is_chargeable:
            raise InstallmentNotPayableException(
                f"Plan is {plan.status.value}; only active or overdue plans can be paid early"
            )
        return plan

    @staticmethod
    def _ensure_payable(installment: ScheduledInstallment) -> None:
        message = NOT_PAYABLE_MESSAGES.get(installment.status)
        if message:
            raise InstallmentNotPayableException(message)

    @staticmethod
    def _ensure_payment_method(plan: InstallmentPlan) -> None:
        if not plan.processor_customer_ref or not plan.processor_payment_method_ref:
            raise PaymentMethodMissingException()
