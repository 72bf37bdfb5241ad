"""API endpoints acting on single installments."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path

from fleet_billing.application.services import (
    DueInstallmentProcessor,
    EarlyPayoffService,
    PlanService,
)
from fleet_billing.core.dependencies import (
    get_early_payoff_service,
    get_installment_processor,
    get_plan_service,
)
from fleet_billing.presentation.schemas import (
    CustomerActionSchema,
    EarlyPaymentResponseSchema,
    ErrorResponseSchema,
    InstallmentResultSchema,
    InstallmentSchema,
    MarkPaidRequestSchema,
)

installment_router = APIRouter(
    prefix="/installments",
    responses={
        400: {"model": ErrorResponseSchema, "description": "Installment cannot be paid right now"},
        404: {"model": ErrorResponseSchema, "description": "Installment not found"},
    },
)

InstallmentId = Annotated[UUID, Path(description="UUID of the installment")]


@installment_router.post(
    "/{installment_id}/pay-early",
    response_model=EarlyPaymentResponseSchema,
    summary="Pay Installment Early",
    description="Charge a scheduled or failed installment now with the card on file.",
    responses={
        202: {"model": ErrorResponseSchema, "description": "Charge accepted, settlement pending"},
        402: {"model": ErrorResponseSchema, "description": "Card declined"},
    },
)
async def pay_early(
    installment_id: InstallmentId,
    request: CustomerActionSchema,
    payoff_service: Annotated[EarlyPayoffService, Depends(get_early_payoff_service)],
) -> EarlyPaymentResponseSchema:
    response = await payoff_service.pay_installment(request.customer_id, str(installment_id))

    return EarlyPaymentResponseSchema(
        installment_id=response.installment_id,
        payment_id=response.payment_id,
        amount_cents=response.amount_cents,
        processor_ref=response.processor_ref,
    )


@installment_router.post(
    "/{installment_id}/mark-paid",
    response_model=InstallmentSchema,
    summary="Mark Installment Paid",
    description="Record an installment as paid outside the processor, for example in cash.",
)
async def mark_paid(
    installment_id: InstallmentId,
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
    request: MarkPaidRequestSchema | None = None,
) -> InstallmentSchema:
    inst = await plan_service.mark_installment_paid_manually(
        str(installment_id),
        payment_id=str(request.payment_id) if request and request.payment_id else None,
    )

    return InstallmentSchema(
        installment_id=inst.installment_id,
        installment_number=inst.installment_number,
        due_date=inst.due_date,
        amount_cents=inst.amount_cents,
        status=inst.status,
        failure_count=inst.failure_count,
        last_failure_reason=inst.last_failure_reason,
        paid_at=inst.paid_at,
    )


@installment_router.post(
    "/{installment_id}/retry",
    response_model=InstallmentResultSchema,
    summary="Retry Failed Installment",
    description="Charge a failed installment immediately, without waiting for the retry interval.",
)
async def retry_installment(
    installment_id: InstallmentId,
    processor: Annotated[DueInstallmentProcessor, Depends(get_installment_processor)],
) -> InstallmentResultSchema:
    result = await processor.retry_installment(str(installment_id))

    return InstallmentResultSchema(
        installment_id=result.installment_id,
        success=result.success,
        processor_ref=result.processor_ref,
        error=result.error,
    )
