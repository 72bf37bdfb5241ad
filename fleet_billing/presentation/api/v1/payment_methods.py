"""Stored card endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from fleet_billing.application.services import PaymentMethodVaultService
from fleet_billing.core.dependencies import get_vault_service
from fleet_billing.presentation.schemas import (
    CardSchema,
    ConfirmPaymentMethodRequestSchema,
    ErrorResponseSchema,
    PaymentMethodUpdateResponseSchema,
    SetupSessionRequestSchema,
    SetupSessionResponseSchema,
)

payment_method_router = APIRouter(
    prefix="/payment-methods",
    responses={
        404: {"model": ErrorResponseSchema, "description": "Customer or plan not found"},
    },
)


@payment_method_router.post(
    "/setup",
    response_model=SetupSessionResponseSchema,
    summary="Start Card Update",
    description="Open a setup session that collects a new card for off-session charges.",
)
async def create_setup_session(
    request: SetupSessionRequestSchema,
    vault: Annotated[PaymentMethodVaultService, Depends(get_vault_service)],
) -> SetupSessionResponseSchema:
    response = await vault.create_setup_session(
        request.customer_id,
        str(request.plan_id) if request.plan_id else None,
    )

    return SetupSessionResponseSchema(
        customer_id=response.customer_id,
        setup_intent_id=response.setup_intent_id,
        client_secret=response.client_secret,
        processor_customer_id=response.processor_customer_id,
    )


@payment_method_router.post(
    "/confirm",
    response_model=PaymentMethodUpdateResponseSchema,
    summary="Replace Card",
    description="""
    Make a newly collected card the one future installments are charged to.

    The card must belong to the customer's own processor profile.
    """,
    responses={
        400: {"model": ErrorResponseSchema, "description": "Card does not belong to this customer"},
    },
)
async def confirm_payment_method(
    request: ConfirmPaymentMethodRequestSchema,
    vault: Annotated[PaymentMethodVaultService, Depends(get_vault_service)],
) -> PaymentMethodUpdateResponseSchema:
    response = await vault.replace_payment_method(
        request.customer_id,
        request.payment_method_id,
        plan_id=str(request.plan_id) if request.plan_id else None,
    )

    return PaymentMethodUpdateResponseSchema(
        customer_id=response.customer_id,
        payment_method_id=response.payment_method_id,
        updated_plan_ids=response.updated_plan_ids,
        card=CardSchema(
            payment_method_id=response.card.payment_method_id,
            brand=response.card.brand,
            last4=response.card.last4,
            exp_month=response.card.exp_month,
            exp_year=response.card.exp_year,
        ),
    )


@payment_method_router.get(
    "/card",
    response_model=CardSchema,
    summary="Card On File",
    responses={
        204: {"description": "No card on file"},
    },
)
async def get_card(
    customer_id: Annotated[str, Query(min_length=1, max_length=255)],
    vault: Annotated[PaymentMethodVaultService, Depends(get_vault_service)],
    plan_id: Annotated[Optional[UUID], Query()] = None,
):
    card = await vault.get_card(customer_id, str(plan_id) if plan_id else None)
    if card is None:
        return Response(status_code=204)

    return CardSchema(
        payment_method_id=card.payment_method_id,
        brand=card.brand,
        last4=card.last4,
        exp_month=card.exp_month,
        exp_year=card.exp_year,
    )
