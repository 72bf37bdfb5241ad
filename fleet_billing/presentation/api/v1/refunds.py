"""Rental rejection and refund endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query

from fleet_billing.application.dto import RefundRequest
from fleet_billing.application.services import (
    LedgerReconciliationService,
    RentalRejectionService,
)
from fleet_billing.core.dependencies import get_ledger_service, get_rejection_service
from fleet_billing.presentation.schemas import (
    ErrorResponseSchema,
    RefundableBalanceSchema,
    RefundOutcomeSchema,
    RefundRequestSchema,
    RefundResponseSchema,
    RejectionResponseSchema,
    RejectRentalRequestSchema,
)

refund_router = APIRouter(
    responses={
        404: {"model": ErrorResponseSchema, "description": "Rental or payment not found"},
    },
)

RentalId = Annotated[str, Path(min_length=1, max_length=255, description="Rental identifier")]


@refund_router.post(
    "/rentals/{rental_id}/reject",
    response_model=RejectionResponseSchema,
    summary="Reject Rental",
    description="""
    Reject a rental and return everything collected for it.

    Captured payments are refunded, pre-authorization holds released, and
    anything that cannot be returned automatically is flagged for a manual
    refund. The plan is cancelled, the vehicle freed, and unpaid charges
    cancelled.
    """,
)
async def reject_rental(
    rental_id: RentalId,
    rejection_service: Annotated[RentalRejectionService, Depends(get_rejection_service)],
    request: RejectRentalRequestSchema | None = None,
) -> RejectionResponseSchema:
    summary = await rejection_service.reject_rental(rental_id, request.reason if request else None)

    return RejectionResponseSchema(
        rental_id=summary.rental_id,
        payments_processed=summary.payments_processed,
        total_refunded_cents=summary.total_refunded_cents,
        manual_refunds_required=summary.manual_refunds_required,
        ledger_entries_created=summary.ledger_entries_created,
        plan_cancelled_id=summary.plan_cancelled_id,
        charges_cancelled=summary.charges_cancelled,
        results=[
            RefundOutcomeSchema(
                payment_id=o.payment_id,
                action=o.action,
                amount_cents=o.amount_cents,
                processor_refund_ref=o.processor_refund_ref,
                error=o.error,
            )
            for o in summary.outcomes
        ],
    )


@refund_router.get(
    "/rentals/{rental_id}/refundable",
    response_model=RefundableBalanceSchema,
    summary="Refundable Balance",
    description="Amount of a ledger category that has been paid and not yet refunded.",
)
async def refundable_balance(
    rental_id: RentalId,
    category: Annotated[str, Query(min_length=1, max_length=100)],
    ledger_service: Annotated[LedgerReconciliationService, Depends(get_ledger_service)],
) -> RefundableBalanceSchema:
    balance = await ledger_service.available_for_refund(rental_id, category)
    return RefundableBalanceSchema(**balance.to_dict())


@refund_router.post(
    "/refunds",
    response_model=RefundResponseSchema,
    status_code=201,
    summary="Refund Ledger Category",
    responses={
        400: {"model": ErrorResponseSchema, "description": "Refund exceeds what is available"},
    },
)
async def create_refund(
    request: RefundRequestSchema,
    ledger_service: Annotated[LedgerReconciliationService, Depends(get_ledger_service)],
) -> RefundResponseSchema:
    response = await ledger_service.process_refund(
        RefundRequest(
            rental_id=request.rental_id,
            category=request.category,
            amount_cents=request.amount_cents,
            reason=request.reason,
            payment_id=str(request.payment_id) if request.payment_id else None,
            processed_by=request.processed_by,
        )
    )

    return RefundResponseSchema(
        rental_id=response.rental_id,
        category=response.category,
        amount_cents=response.amount_cents,
        status=response.status,
        payment_id=response.payment_id,
        processor_refund_ref=response.processor_refund_ref,
        available_after_cents=response.available_after_cents,
    )
