"""Checkout orchestration - opens and confirms rental checkouts."""

from typing import List, Optional
from uuid import uuid4

import structlog

from fleet_billing.core.config import Settings, settings
from fleet_billing.core.metrics import record_plan_created
from fleet_billing.domain.entities import (
    CaptureStatus,
    CheckoutLineItem,
    CheckoutSessionRequest,
    InstallmentStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    PlanStatus,
)
from fleet_billing.domain.exceptions import (
    CheckoutNotConfirmableException,
    CustomerNotFoundException,
    InvalidPlanAmountException,
    InvalidPlanRequestException,
    PaymentNotFoundException,
)
from fleet_billing.domain.interfaces import (
    CustomerRepository,
    PaymentRepository,
    PlanRepository,
)
from fleet_billing.application.dto import (
    CheckoutConfirmation,
    CheckoutRequest,
    CheckoutResponse,
)

from .plan_builder import InstallmentPlanBuilder
from .settlement import InstallmentSettlement
from .tenant_context import ProcessorFactory, TenantPaymentContextResolver
from .vault_service import PaymentMethodVaultService

logger = structlog.get_logger(__name__)

UPFRONT_CATEGORIES = ["Security Deposit", "Service Fee"]


class CheckoutService:
    """
    Opens the hosted checkout for a rental and confirms it once paid.

    The checkout collects the upfront amount, plus installment #1 when the
    plan folds it in, and saves the card for later off-session charges.
    """

    def __init__(
        self,
        plan_builder: InstallmentPlanBuilder,
        plan_repository: PlanRepository,
        payment_repository: PaymentRepository,
        customer_repository: CustomerRepository,
        context_resolver: TenantPaymentContextResolver,
        vault: PaymentMethodVaultService,
        settlement: InstallmentSettlement,
        processor_factory: ProcessorFactory,
        app_settings: Settings = settings,
    ):
        self._plan_builder = plan_builder
        self._plan_repo = plan_repository
        self._payment_repo = payment_repository
        self._customer_repo = customer_repository
        self._context_resolver = context_resolver
        self._vault = vault
        self._settlement = settlement
        self._processor_factory = processor_factory
        self._settings = app_settings

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResponse:
        """
        Open a checkout session and record what it will collect.

        The plan is built before any processor call, so a rental that
        already has an open plan or an invalid schedule fails without side
        effects. The pending payment and the plan are committed before the
        checkout URL is returned.

        Raises:
            PlanAlreadyExistsException: If the rental already has an open plan
            CustomerNotFoundException: If the customer does not exist
            ProcessorException: If the processor rejects the session
        """
        errors = request.validate()
        if errors:
            raise InvalidPlanRequestException("; ".join(errors))

        log = logger.bind(rental_id=request.rental_id, tenant_id=request.tenant_id)

        customer = await self._customer_repo.get(request.customer_id)
        if customer is None:
            raise CustomerNotFoundException(request.customer_id)

        plan = None
        if request.plan is not None:
            await self._plan_builder.ensure_no_open_plan(request.rental_id)
            plan = self._plan_builder.build(request.plan)

        line_items = self._line_items(request, plan)
        amount_cents = sum(item.amount_cents * item.quantity for item in line_items)
        if amount_cents <= 0:
            raise InvalidPlanAmountException("Checkout amount must be positive")

        context = await self._context_resolver.resolve(request.tenant_id)
        customer_ref = await self._vault.ensure_profile(customer, context)
        processor = self._processor_factory(context)

        payment_id = str(uuid4())
        session = await processor.create_checkout_session(
            CheckoutSessionRequest(
                customer_ref=customer_ref,
                line_items=line_items,
                success_url=self._settings.checkout_success_url,
                cancel_url=self._settings.checkout_cancel_url,
                client_reference_id=request.rental_id,
                metadata={
                    "rental_id": request.rental_id,
                    "tenant_id": request.tenant_id,
                    "payment_id": payment_id,
                    "plan_id": plan.id if plan else "",
                },
                idempotency_key=f"checkout-{payment_id}",
            )
        )

        payment = Payment(
            id=payment_id,
            rental_id=request.rental_id,
            customer_id=request.customer_id,
            tenant_id=request.tenant_id,
            amount_cents=amount_cents,
            payment_type=PaymentType.INITIAL_FEE,
            status=PaymentStatus.PENDING,
            processor_session_ref=session.id,
            target_categories=self._target_categories(request, plan),
            notes=request.description,
        )
        await self._payment_repo.save(payment)

        if plan is not None:
            plan.processor_customer_ref = customer_ref
            plan.upfront_payment_id = payment.id
            await self._plan_repo.save(plan)
            record_plan_created(plan.plan_type.value)

        await self._plan_repo.commit()

        log.info(
            "checkout_created",
            payment_id=payment.id,
            plan_id=plan.id if plan else None,
            amount_cents=amount_cents,
            mode=context.mode.value,
        )

        return CheckoutResponse(
            session_id=session.id,
            url=session.url,
            payment_id=payment.id,
            amount_cents=amount_cents,
            plan_id=plan.id if plan else None,
            processor_customer_id=customer_ref,
        )

    async def confirm_checkout(
        self,
        session_ref: str,
        payment_intent_ref: Optional[str] = None,
        payment_method_ref: Optional[str] = None,
        charge_ref: Optional[str] = None,
    ) -> CheckoutConfirmation:
        """
        Apply a paid checkout: payment applied, plan active, folded #1 paid.

        Safe to call more than once for the same session.

        Raises:
            PaymentNotFoundException: If no payment was recorded for the session
            CheckoutNotConfirmableException: If the session is unpaid or the
                payment was already cancelled
        """
        payment = await self._payment_repo.get_by_session_ref(session_ref)
        if payment is None:
            raise PaymentNotFoundException(session_ref)

        plan = await self._plan_for_payment(payment)
        log = logger.bind(payment_id=payment.id, rental_id=payment.rental_id)

        if payment.status == PaymentStatus.APPLIED:
            log.info("checkout_already_confirmed")
            return CheckoutConfirmation(
                payment_id=payment.id,
                plan_id=plan.id if plan else None,
                plan_status=plan.status.value if plan else None,
                already_confirmed=True,
            )

        if payment.status != PaymentStatus.PENDING:
            raise CheckoutNotConfirmableException(
                f"Checkout payment is {payment.status.value} and cannot be confirmed"
            )

        if not payment_intent_ref or not payment_method_ref:
            context = await self._context_resolver.resolve(payment.tenant_id)
            processor = self._processor_factory(context)
            session = await processor.retrieve_checkout_session(session_ref)
            if not session.paid:
                raise CheckoutNotConfirmableException("Checkout session has not been paid")
            payment_intent_ref = payment_intent_ref or session.payment_intent_ref
            payment_method_ref = payment_method_ref or session.payment_method_ref

        payment.status = PaymentStatus.APPLIED
        payment.capture_status = CaptureStatus.CAPTURED
        payment.processor_intent_ref = payment_intent_ref
        await self._payment_repo.update(payment)

        if plan is not None:
            await self._plan_repo.transition_plan(
                plan.id,
                PlanStatus.ACTIVE,
                upfront_paid=True,
                processor_payment_method_ref=payment_method_ref,
            )
            first = plan.get_installment(1)
            if (
                plan.config.charge_first_upfront
                and first is not None
                and first.status == InstallmentStatus.PROCESSING
            ):
                await self._settlement.mark_paid(
                    first,
                    payment_id=payment.id,
                    intent_ref=payment_intent_ref,
                    charge_ref=charge_ref,
                )
            plan = await self._plan_repo.get_by_id(plan.id)

        await self._plan_repo.commit()

        log.info(
            "checkout_confirmed",
            plan_id=plan.id if plan else None,
            plan_status=plan.status.value if plan else None,
        )

        return CheckoutConfirmation(
            payment_id=payment.id,
            plan_id=plan.id if plan else None,
            plan_status=plan.status.value if plan else None,
        )

    async def _plan_for_payment(self, payment: Payment):
        for plan in await self._plan_repo.get_by_rental_id(payment.rental_id):
            if plan.upfront_payment_id == payment.id:
                return plan
        return None

    @staticmethod
    def _line_items(request: CheckoutRequest, plan) -> List[CheckoutLineItem]:
        items = []
        if request.upfront_base_cents > 0:
            items.append(CheckoutLineItem(name=request.description, amount_cents=request.upfront_base_cents))

        if plan is not None and plan.config.charge_first_upfront:
            first = plan.get_installment(1)
            items.append(
                CheckoutLineItem(
                    name=f"Installment 1 of {plan.number_of_installments}",
                    amount_cents=first.amount_cents,
                )
            )
        return items

    @staticmethod
    def _target_categories(request: CheckoutRequest, plan) -> List[str]:
        categories = list(request.target_categories or UPFRONT_CATEGORIES)
        if plan is not None and plan.config.charge_first_upfront:
            for category in plan.config.split_categories:
                if category not in categories:
                    categories.append(category)
        return categories
