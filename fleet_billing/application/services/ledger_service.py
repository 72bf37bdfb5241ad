"""Ledger reconciliation and category refunds."""

from datetime import datetime

import structlog

from fleet_billing.core.metrics import record_refund_outcome
from fleet_billing.domain.entities import (
    CaptureStatus,
    LedgerEntry,
    LedgerEntryType,
    PaymentStatus,
    RefundableBalance,
    RefundStatus,
)
from fleet_billing.domain.exceptions import (
    HoldNotRefundableException,
    InvalidRefundRequestException,
    NoRefundableBalanceException,
    PaymentNotCompletedException,
    PaymentNotFoundException,
    RefundExceedsAvailableException,
    RentalNotFoundException,
)
from fleet_billing.domain.interfaces import (
    LedgerRepository,
    PaymentRepository,
    RentalRepository,
)
from fleet_billing.service.installments import calculate_refundable_balance
from fleet_billing.application.dto import RefundAction, RefundRequest, RefundResponse

from .tenant_context import ProcessorFactory, TenantPaymentContextResolver

logger = structlog.get_logger(__name__)


class LedgerReconciliationService:
    """
    Refunds against a single ledger category of a rental.

    Never refunds more than the category has collected net of earlier
    refunds. All checks run before the processor is called.
    """

    def __init__(
        self,
        ledger_repository: LedgerRepository,
        payment_repository: PaymentRepository,
        rental_repository: RentalRepository,
        context_resolver: TenantPaymentContextResolver,
        processor_factory: ProcessorFactory,
    ):
        self._ledger_repo = ledger_repository
        self._payment_repo = payment_repository
        self._rental_repo = rental_repository
        self._context_resolver = context_resolver
        self._processor_factory = processor_factory

    async def available_for_refund(self, rental_id: str, category: str) -> RefundableBalance:
        entries = await self._ledger_repo.get_entries(rental_id, category)
        balance = calculate_refundable_balance(rental_id, category, entries)

        logger.debug("refundable_balance_calculated", **balance.to_dict())

        return balance

    async def process_refund(self, request: RefundRequest) -> RefundResponse:
        """
        Refund part of a category's collected amount.

        The refund goes back through the named payment, or the rental's most
        recent processor payment. Without one it is recorded as a manual
        refund for an operator to pay out.

        Raises:
            InvalidRefundRequestException: If the request fails validation
            NoRefundableBalanceException: If nothing is refundable
            RefundExceedsAvailableException: If the amount is too large
            HoldNotRefundableException: If the payment is an uncaptured hold
        """
        errors = request.validate()
        if errors:
            raise InvalidRefundRequestException("; ".join(errors))

        log = logger.bind(rental_id=request.rental_id, category=request.category)

        rental = await self._rental_repo.get(request.rental_id)
        if rental is None:
            raise RentalNotFoundException(request.rental_id)

        balance = await self.available_for_refund(request.rental_id, request.category)
        if balance.available_cents <= 0:
            raise NoRefundableBalanceException(request.category)
        if request.amount_cents > balance.available_cents:
            log.warning(
                "refund_exceeds_available",
                requested_cents=request.amount_cents,
                available_cents=balance.available_cents,
            )
            raise RefundExceedsAvailableException(request.amount_cents, balance.available_cents)

        if request.payment_id:
            payment = await self._payment_repo.get_by_id(request.payment_id)
            if payment is None or payment.rental_id != request.rental_id:
                raise PaymentNotFoundException(request.payment_id)
        else:
            payment = await self._payment_repo.get_latest_with_intent(request.rental_id)

        refund_ref = None
        if payment is not None and payment.processor_intent_ref:
            context = await self._context_resolver.resolve(rental.tenant_id)
            processor = self._processor_factory(context)

            intent = await processor.retrieve_payment_intent(payment.processor_intent_ref)
            if intent.requires_capture:
                raise HoldNotRefundableException(payment.id)
            if not intent.succeeded:
                raise PaymentNotCompletedException(intent.status)

            refund = await processor.create_refund(
                payment.processor_intent_ref,
                request.amount_cents,
                idempotency_key=f"refund-{payment.id}-{payment.refund_amount_cents}",
                metadata={
                    "rental_id": request.rental_id,
                    "payment_id": payment.id,
                    "category": request.category,
                },
            )
            refund_ref = refund.id

        status = RefundAction.REFUNDED if refund_ref else RefundAction.PENDING_MANUAL

        if payment is not None:
            payment.refund_amount_cents += request.amount_cents
            fully_refunded = payment.refund_amount_cents >= payment.amount_cents
            payment.status = PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PARTIAL_REFUND
            if refund_ref:
                payment.capture_status = (
                    CaptureStatus.REFUNDED if fully_refunded else CaptureStatus.PARTIAL_REFUND
                )
                payment.processor_refund_ref = refund_ref
                payment.refund_status = RefundStatus.COMPLETED
            else:
                payment.refund_status = RefundStatus.PENDING_MANUAL
            payment.refund_reason = request.reason
            payment.refund_processed_at = datetime.utcnow()
            await self._payment_repo.update(payment)

        await self._ledger_repo.append(
            [
                LedgerEntry(
                    rental_id=request.rental_id,
                    type=LedgerEntryType.REFUND,
                    category=request.category,
                    amount_cents=-request.amount_cents,
                    customer_id=rental.customer_id,
                    tenant_id=rental.tenant_id,
                    reference=refund_ref or (payment.id if payment else None),
                )
            ]
        )

        record_refund_outcome(status, request.amount_cents)

        log.info(
            "refund_processed",
            amount_cents=request.amount_cents,
            status=status,
            payment_id=payment.id if payment else None,
            processed_by=request.processed_by,
        )

        return RefundResponse(
            rental_id=request.rental_id,
            category=request.category,
            amount_cents=request.amount_cents,
            status=status,
            payment_id=payment.id if payment else None,
            processor_refund_ref=refund_ref,
            available_after_cents=balance.available_cents - request.amount_cents,
        )
