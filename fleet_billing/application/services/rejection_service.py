"""
Rental rejection cascade.

Rejecting a rental unwinds every payment taken for it: captured money is
refunded, pre-authorization holds are released, and what cannot be
returned automatically is flagged for a manual refund. The ledger gets a
compensating refund line per category, then the plan, rental, vehicle and
unpaid charges are closed out.

Each payment outcome is committed with its ledger lines before the next
payment is handled. Running the cascade again skips payments that are
already settled.
"""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog

from fleet_billing.core.metrics import record_refund_outcome
from fleet_billing.domain.entities import (
    ApprovalStatus,
    CaptureStatus,
    LedgerEntry,
    LedgerEntryType,
    Payment,
    PaymentStatus,
    PlanStatus,
    RefundStatus,
    Rental,
    RentalStatus,
    VehicleStatus,
)
from fleet_billing.domain.exceptions import (
    DomainException,
    ProcessorConfigurationException,
    ProcessorInvalidRequestException,
    RentalNotFoundException,
)
from fleet_billing.domain.interfaces import (
    LedgerRepository,
    PaymentProcessorClient,
    PaymentRepository,
    PlanRepository,
    RentalRepository,
)
from fleet_billing.service.installments import refund_allocation
from fleet_billing.application.dto import RefundAction, RefundOutcome, RejectionSummary

from .notifications import NotificationDispatcher
from .tenant_context import ProcessorFactory, TenantPaymentContextResolver

logger = structlog.get_logger(__name__)

# Processor answers to a hold release that mean the hold is already gone.
RELEASED_HOLD_CODES = frozenset({"payment_intent_unexpected_state", "resource_missing"})

DEFAULT_REJECTION_REASON = "Rental rejected"


class RentalRejectionService:
    """Unwinds the money and state of a rejected rental."""

    def __init__(
        self,
        rental_repository: RentalRepository,
        payment_repository: PaymentRepository,
        ledger_repository: LedgerRepository,
        plan_repository: PlanRepository,
        context_resolver: TenantPaymentContextResolver,
        notifier: NotificationDispatcher,
        processor_factory: ProcessorFactory,
    ):
        self._rental_repo = rental_repository
        self._payment_repo = payment_repository
        self._ledger_repo = ledger_repository
        self._plan_repo = plan_repository
        self._context_resolver = context_resolver
        self._notifier = notifier
        self._processor_factory = processor_factory

    async def reject_rental(self, rental_id: str, reason: Optional[str] = None) -> RejectionSummary:
        """
        Reject a rental and return everything collected for it.

        Payments are handled oldest first. A payment the processor cannot
        settle is marked for a manual refund and the cascade moves on.

        Raises:
            RentalNotFoundException: If the rental does not exist
        """
        reason = reason or DEFAULT_REJECTION_REASON

        rental = await self._rental_repo.get(rental_id)
        if rental is None:
            raise RentalNotFoundException(rental_id)

        log = logger.bind(rental_id=rental_id, tenant_id=rental.tenant_id)

        processor, processor_error = await self._processor_for(rental, log)

        outcomes: List[RefundOutcome] = []
        ledger_entries: List[LedgerEntry] = []

        for payment in await self._payment_repo.get_open_for_rental(rental_id):
            outcome = await self._settle_payment(payment, processor, processor_error, reason, log)
            outcomes.append(outcome)

            returned = outcome.action in (RefundAction.REFUNDED, RefundAction.RELEASED)
            record_refund_outcome(outcome.action, outcome.amount_cents if returned else 0)

            if returned and outcome.amount_cents > 0:
                entries = await self._compensating_entries(rental, payment, outcome)
                await self._ledger_repo.append(entries)
                ledger_entries.extend(entries)

            # Each outcome is durable before the next processor call.
            await self._plan_repo.commit()

        plan_id = await self._cancel_plan(rental_id, log)

        rental.status = RentalStatus.CANCELLED
        rental.approval_status = ApprovalStatus.REJECTED
        rental.payment_status = "refunded"
        rental.cancellation_reason = reason
        await self._rental_repo.update(rental)

        if rental.vehicle_id:
            await self._rental_repo.set_vehicle_status(rental.vehicle_id, VehicleStatus.AVAILABLE.value)

        charges_cancelled = await self._rental_repo.cancel_unpaid_charges(rental_id)

        await self._plan_repo.commit()

        summary = RejectionSummary(
            rental_id=rental_id,
            outcomes=outcomes,
            ledger_entries_created=len(ledger_entries),
            plan_cancelled_id=plan_id,
            charges_cancelled=charges_cancelled,
        )

        log.info(
            "rental_rejected",
            payments_processed=summary.payments_processed,
            total_refunded_cents=summary.total_refunded_cents,
            manual_refunds_required=summary.manual_refunds_required,
            plan_cancelled_id=plan_id,
        )

        if summary.total_refunded_cents > 0:
            await self._notifier.refund_processed(
                rental_id, rental.customer_id, summary.total_refunded_cents, reason
            )

        return summary

    async def _processor_for(
        self,
        rental: Rental,
        log,
    ) -> Tuple[Optional[PaymentProcessorClient], Optional[str]]:
        context = await self._context_resolver.resolve(rental.tenant_id)
        try:
            return self._processor_factory(context), None
        except DomainException as exc:
            log.error("rejection_processor_unavailable", error=exc.message, mode=context.mode.value)
            return None, exc.message

    async def _settle_payment(
        self,
        payment: Payment,
        processor: Optional[PaymentProcessorClient],
        processor_error: Optional[str],
        reason: str,
        log,
    ) -> RefundOutcome:
        plog = log.bind(payment_id=payment.id)

        try:
            intent_ref = payment.processor_intent_ref
            capture = payment.capture_status

            if not intent_ref and payment.processor_session_ref:
                session = await self._require(processor, processor_error).retrieve_checkout_session(
                    payment.processor_session_ref
                )
                if session.payment_intent_ref:
                    intent_ref = session.payment_intent_ref
                    payment.processor_intent_ref = intent_ref
                if not session.paid and capture is None:
                    return await self._cancel(payment, reason, plog)

            if intent_ref and capture is None:
                intent = await self._require(processor, processor_error).retrieve_payment_intent(intent_ref)
                if intent.requires_capture:
                    capture = CaptureStatus.REQUIRES_CAPTURE
                elif intent.succeeded:
                    capture = CaptureStatus.CAPTURED

            if intent_ref and capture == CaptureStatus.REQUIRES_CAPTURE:
                return await self._release_hold(
                    payment, intent_ref, self._require(processor, processor_error), reason, plog
                )

            if intent_ref and capture in (CaptureStatus.CAPTURED, CaptureStatus.PARTIAL_REFUND):
                return await self._refund_captured(
                    payment, intent_ref, self._require(processor, processor_error), reason, plog
                )

            if not intent_ref and payment.amount_cents > 0:
                return await self._mark_manual(payment, reason, None, plog)

            return await self._cancel(payment, reason, plog)

        except DomainException as exc:
            plog.error("rejection_payment_failed", error=exc.message)
            return await self._mark_manual(payment, reason, exc.message, plog)

    async def _release_hold(
        self,
        payment: Payment,
        intent_ref: str,
        processor: PaymentProcessorClient,
        reason: str,
        log,
    ) -> RefundOutcome:
        try:
            await processor.cancel_payment_intent(intent_ref)
        except ProcessorInvalidRequestException as exc:
            if exc.processor_code not in RELEASED_HOLD_CODES:
                raise
            log.info("hold_already_released", processor_code=exc.processor_code)

        amount = payment.refundable_cents

        payment.status = PaymentStatus.REFUNDED
        payment.capture_status = CaptureStatus.CANCELLED
        payment.refund_status = RefundStatus.COMPLETED
        payment.refund_amount_cents = payment.amount_cents
        payment.refund_reason = reason
        payment.refund_processed_at = datetime.utcnow()
        await self._payment_repo.update(payment)

        log.info("hold_released", amount_cents=amount)

        return RefundOutcome(payment_id=payment.id, action=RefundAction.RELEASED, amount_cents=amount)

    async def _refund_captured(
        self,
        payment: Payment,
        intent_ref: str,
        processor: PaymentProcessorClient,
        reason: str,
        log,
    ) -> RefundOutcome:
        amount = payment.refundable_cents
        refund_ref = None

        if amount > 0:
            refund = await processor.create_refund(
                intent_ref,
                amount,
                idempotency_key=f"reject-{payment.id}",
                metadata={
                    "rental_id": payment.rental_id,
                    "payment_id": payment.id,
                    "reason": reason,
                },
            )
            refund_ref = refund.id

        payment.status = PaymentStatus.REFUNDED
        payment.capture_status = CaptureStatus.REFUNDED
        payment.refund_status = RefundStatus.COMPLETED
        payment.refund_amount_cents += amount
        payment.processor_refund_ref = refund_ref or payment.processor_refund_ref
        payment.refund_reason = reason
        payment.refund_processed_at = datetime.utcnow()
        await self._payment_repo.update(payment)

        log.info("payment_refunded", amount_cents=amount, refund_ref=refund_ref)

        return RefundOutcome(
            payment_id=payment.id,
            action=RefundAction.REFUNDED,
            amount_cents=amount,
            processor_refund_ref=refund_ref,
        )

    async def _mark_manual(
        self,
        payment: Payment,
        reason: str,
        error: Optional[str],
        log,
    ) -> RefundOutcome:
        payment.refund_status = RefundStatus.PENDING_MANUAL
        payment.refund_reason = reason
        if error:
            payment.notes = f"Automatic refund failed: {error}"
        await self._payment_repo.update(payment)

        log.warning("manual_refund_required", amount_cents=payment.refundable_cents, error=error)

        return RefundOutcome(
            payment_id=payment.id,
            action=RefundAction.PENDING_MANUAL,
            amount_cents=payment.refundable_cents,
            error=error,
        )

    async def _cancel(self, payment: Payment, reason: str, log) -> RefundOutcome:
        payment.status = PaymentStatus.CANCELLED
        payment.refund_reason = reason
        await self._payment_repo.update(payment)

        log.info("payment_cancelled")

        return RefundOutcome(payment_id=payment.id, action=RefundAction.CANCELLED, amount_cents=0)

    async def _compensating_entries(
        self,
        rental: Rental,
        payment: Payment,
        outcome: RefundOutcome,
    ) -> List[LedgerEntry]:
        applications = await self._payment_repo.get_applications(payment.id)
        allocation = refund_allocation(outcome.amount_cents, applications, payment.target_categories)

        return [
            LedgerEntry(
                rental_id=rental.id,
                type=LedgerEntryType.REFUND,
                category=category,
                amount_cents=-cents,
                customer_id=rental.customer_id,
                tenant_id=rental.tenant_id,
                reference=outcome.processor_refund_ref or payment.id,
            )
            for category, cents in allocation
        ]

    async def _cancel_plan(self, rental_id: str, log) -> Optional[str]:
        plan = await self._plan_repo.get_open_plan_for_rental(rental_id)
        if plan is None:
            return None

        await self._plan_repo.transition_plan(plan.id, PlanStatus.CANCELLED, next_due_date=None)
        cancelled = await self._plan_repo.cancel_open_installments(plan.id)

        log.info("plan_cancelled", plan_id=plan.id, installments_cancelled=cancelled)

        return plan.id

    @staticmethod
    def _require(
        processor: Optional[PaymentProcessorClient],
        processor_error: Optional[str],
    ) -> PaymentProcessorClient:
        if processor is None:
            raise ProcessorConfigurationException(processor_error or "Payment processor is not configured")
        return processor
