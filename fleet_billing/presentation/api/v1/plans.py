"""API endpoints for installment plans."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from fleet_billing.application.dto import PlanResponse
from fleet_billing.application.services import EarlyPayoffService, PlanService
from fleet_billing.core.dependencies import get_early_payoff_service, get_plan_service
from fleet_billing.presentation.schemas import (
    CancelPlanRequestSchema,
    CustomerActionSchema,
    ErrorResponseSchema,
    InstallmentSchema,
    PayoffResponseSchema,
    PlanResponseSchema,
)

plan_router = APIRouter(
    responses={
        404: {"model": ErrorResponseSchema, "description": "Plan not found"},
    },
)


def to_plan_schema(response: PlanResponse) -> PlanResponseSchema:
    return PlanResponseSchema(
        plan_id=response.plan_id,
        rental_id=response.rental_id,
        customer_id=response.customer_id,
        plan_type=response.plan_type,
        status=response.status,
        number_of_installments=response.number_of_installments,
        installment_amount_cents=response.installment_amount_cents,
        upfront_amount_cents=response.upfront_amount_cents,
        upfront_paid=response.upfront_paid,
        total_installable_cents=response.total_installable_cents,
        total_paid_cents=response.total_paid_cents,
        paid_installments=response.paid_installments,
        next_due_date=response.next_due_date,
        has_payment_method=response.has_payment_method,
        past_due_installments=response.past_due_installments,
        past_due_cents=response.past_due_cents,
        installments=[
            InstallmentSchema(
                installment_id=inst.installment_id,
                installment_number=inst.installment_number,
                due_date=inst.due_date,
                amount_cents=inst.amount_cents,
                status=inst.status,
                failure_count=inst.failure_count,
                last_failure_reason=inst.last_failure_reason,
                paid_at=inst.paid_at,
            )
            for inst in response.installments
        ],
    )


@plan_router.get(
    "/plans/{plan_id}",
    response_model=PlanResponseSchema,
    summary="Get Installment Plan",
    description="""
    Retrieve an installment plan by its ID.

    Returns the plan totals and every installment with its due date,
    amount and current status.
    """,
)
async def get_plan(
    plan_id: Annotated[UUID, Path(description="UUID of the plan to retrieve")],
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
) -> PlanResponseSchema:
    return to_plan_schema(await plan_service.get_plan(str(plan_id)))


@plan_router.get(
    "/plans",
    response_model=list[PlanResponseSchema],
    summary="List Customer Plans",
)
async def list_customer_plans(
    customer_id: Annotated[str, Query(min_length=1, max_length=255, description="Customer to list plans for")],
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
) -> list[PlanResponseSchema]:
    return [to_plan_schema(plan) for plan in await plan_service.get_plans_by_customer(customer_id)]


@plan_router.get(
    "/rentals/{rental_id}/plan",
    response_model=PlanResponseSchema,
    summary="Get Rental Plan",
    description="Retrieve the most recent installment plan of a rental.",
)
async def get_rental_plan(
    rental_id: Annotated[str, Path(min_length=1, max_length=255)],
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
) -> PlanResponseSchema:
    return to_plan_schema(await plan_service.get_plan_for_rental(rental_id))


@plan_router.post(
    "/plans/{plan_id}/cancel",
    response_model=PlanResponseSchema,
    summary="Cancel Plan",
    description="Cancel a plan and every installment not yet paid.",
    responses={
        400: {"model": ErrorResponseSchema, "description": "Plan already completed or cancelled"},
    },
)
async def cancel_plan(
    plan_id: Annotated[UUID, Path(description="UUID of the plan to cancel")],
    plan_service: Annotated[PlanService, Depends(get_plan_service)],
    request: CancelPlanRequestSchema | None = None,
) -> PlanResponseSchema:
    reason = request.reason if request else None
    return to_plan_schema(await plan_service.cancel_plan(str(plan_id), reason))


@plan_router.post(
    "/plans/{plan_id}/pay-remaining",
    response_model=PayoffResponseSchema,
    summary="Pay Off Plan",
    description="""
    Charge every outstanding installment of the plan in one payment.

    Refused while any installment of the plan is being charged.
    """,
    responses={
        400: {"model": ErrorResponseSchema, "description": "Plan cannot be paid off right now"},
        202: {"model": ErrorResponseSchema, "description": "Charge accepted, settlement pending"},
        402: {"model": ErrorResponseSchema, "description": "Card declined"},
    },
)
async def pay_remaining(
    plan_id: Annotated[UUID, Path(description="UUID of the plan to pay off")],
    request: CustomerActionSchema,
    payoff_service: Annotated[EarlyPayoffService, Depends(get_early_payoff_service)],
) -> PayoffResponseSchema:
    response = await payoff_service.pay_remaining(request.customer_id, str(plan_id))

    return PayoffResponseSchema(
        plan_id=response.plan_id,
        payment_id=response.payment_id,
        amount_cents=response.amount_cents,
        installments_paid=response.installments_paid,
        plan_status=response.plan_status,
        processor_ref=response.processor_ref,
    )
