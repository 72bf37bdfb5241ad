"""Checkout API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from fleet_billing.application.dto import CheckoutRequest, PlanRequest
from fleet_billing.application.services import CheckoutService
from fleet_billing.core.dependencies import get_checkout_service
from fleet_billing.presentation.schemas import (
    CheckoutConfirmRequestSchema,
    CheckoutConfirmResponseSchema,
    CheckoutRequestSchema,
    CheckoutResponseSchema,
    ErrorResponseSchema,
)

checkout_router = APIRouter(
    prefix="/checkout",
    responses={
        400: {"model": ErrorResponseSchema, "description": "Invalid request"},
        404: {"model": ErrorResponseSchema, "description": "Customer or payment not found"},
        502: {"model": ErrorResponseSchema, "description": "Payment processor error"},
        503: {"model": ErrorResponseSchema, "description": "Payment processor unavailable"},
    },
)


@checkout_router.post(
    "",
    response_model=CheckoutResponseSchema,
    status_code=201,
    summary="Open Checkout",
    description="""
    Open a hosted checkout for a rental's upfront amount.

    When plan options are given, an installment plan is created in pending
    status and, if requested, installment #1 is collected in the same checkout.
    """,
    responses={
        409: {"model": ErrorResponseSchema, "description": "Rental already has an open plan"},
    },
)
async def create_checkout(
    request: CheckoutRequestSchema,
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CheckoutResponseSchema:
    plan = None
    if request.plan is not None:
        plan = PlanRequest(
            rental_id=request.rental_id,
            tenant_id=request.tenant_id,
            customer_id=request.customer_id,
            upfront_base_cents=request.upfront_base_cents,
            total_installable_cents=request.plan.total_installable_cents,
            plan_type=request.plan.plan_type,
            number_of_installments=request.plan.number_of_installments,
            start_date=request.plan.start_date,
            charge_first_upfront=request.plan.charge_first_upfront,
            first_installment_cents=request.plan.first_installment_cents,
            what_gets_split=request.plan.what_gets_split,
            grace_period_days=request.plan.grace_period_days,
            max_retry_attempts=request.plan.max_retry_attempts,
            retry_interval_days=request.plan.retry_interval_days,
        )

    dto = CheckoutRequest(
        rental_id=request.rental_id,
        tenant_id=request.tenant_id,
        customer_id=request.customer_id,
        upfront_base_cents=request.upfront_base_cents,
        description=request.description,
        plan=plan,
        target_categories=request.target_categories,
    )

    response = await checkout_service.create_checkout(dto)

    return CheckoutResponseSchema(
        session_id=response.session_id,
        url=response.url,
        payment_id=response.payment_id,
        amount_cents=response.amount_cents,
        plan_id=response.plan_id,
    )


@checkout_router.post(
    "/confirm",
    response_model=CheckoutConfirmResponseSchema,
    summary="Confirm Checkout",
    description="""
    Apply a paid checkout session: the upfront payment is applied, the plan
    becomes active with the saved card, and a folded installment #1 is
    marked paid. Repeating the call is harmless.
    """,
)
async def confirm_checkout(
    request: CheckoutConfirmRequestSchema,
    checkout_service: Annotated[CheckoutService, Depends(get_checkout_service)],
) -> CheckoutConfirmResponseSchema:
    response = await checkout_service.confirm_checkout(
        request.session_id,
        payment_intent_ref=request.payment_intent_id,
        payment_method_ref=request.payment_method_id,
        charge_ref=request.charge_id,
    )

    return CheckoutConfirmResponseSchema(
        payment_id=response.payment_id,
        plan_id=response.plan_id,
        plan_status=response.plan_status,
        already_confirmed=response.already_confirmed,
    )
