"""Stored payment method service."""

from typing import List, Optional

import structlog

from fleet_billing.domain.entities import (
    CHARGEABLE_PLAN_STATUSES,
    CustomerPaymentProfile,
    InstallmentPlan,
    TenantPaymentContext,
)
from fleet_billing.domain.exceptions import (
    CustomerNotFoundException,
    PaymentMethodOwnershipException,
    PlanNotFoundException,
)
from fleet_billing.domain.interfaces import CustomerRepository, PlanRepository
from fleet_billing.application.dto import (
    CardDTO,
    PaymentMethodUpdateResponse,
    SetupSessionResponse,
)

from .tenant_context import ProcessorFactory, TenantPaymentContextResolver

logger = structlog.get_logger(__name__)


class PaymentMethodVaultService:
    """
    Processor customer profiles and the cards stored against them.

    Card data never touches this service; only processor tokens do.
    """

    def __init__(
        self,
        customer_repository: CustomerRepository,
        plan_repository: PlanRepository,
        context_resolver: TenantPaymentContextResolver,
        processor_factory: ProcessorFactory,
    ):
        self._customer_repo = customer_repository
        self._plan_repo = plan_repository
        self._context_resolver = context_resolver
        self._processor_factory = processor_factory

    async def ensure_profile(
        self,
        customer: CustomerPaymentProfile,
        context: TenantPaymentContext,
    ) -> str:
        """
        Return the customer's processor profile, creating it on first use.

        Returns:
            The processor customer reference
        """
        if customer.processor_customer_ref:
            return customer.processor_customer_ref

        processor = self._processor_factory(context)
        customer_ref = await processor.create_customer(
            email=customer.email,
            name=customer.name,
            phone=customer.phone,
            metadata={
                "customer_id": customer.customer_id,
                "tenant_id": customer.tenant_id,
            },
        )

        await self._customer_repo.set_processor_customer_ref(customer.customer_id, customer_ref)
        customer.processor_customer_ref = customer_ref

        logger.info(
            "processor_profile_created",
            customer_id=customer.customer_id,
            tenant_id=customer.tenant_id,
            mode=context.mode.value,
        )

        return customer_ref

    async def create_setup_session(
        self,
        customer_id: str,
        plan_id: Optional[str] = None,
    ) -> SetupSessionResponse:
        """
        Start collecting a new card for off-session use.

        Raises:
            CustomerNotFoundException: If the customer does not exist
            PlanNotFoundException: If ``plan_id`` is not one of the customer's plans
        """
        customer = await self._get_customer(customer_id)
        if plan_id:
            await self._get_owned_plan(customer_id, plan_id)

        context = await self._context_resolver.resolve(customer.tenant_id)
        customer_ref = await self.ensure_profile(customer, context)

        processor = self._processor_factory(context)
        intent = await processor.create_setup_intent(
            customer_ref,
            metadata={"customer_id": customer_id, "plan_id": plan_id or ""},
        )

        await self._plan_repo.commit()

        logger.info("setup_session_created", customer_id=customer_id, plan_id=plan_id)

        return SetupSessionResponse(
            customer_id=customer_id,
            setup_intent_id=intent.id,
            client_secret=intent.client_secret,
            processor_customer_id=customer_ref,
        )

    async def replace_payment_method(
        self,
        customer_id: str,
        payment_method_ref: str,
        plan_id: Optional[str] = None,
    ) -> PaymentMethodUpdateResponse:
        """
        Make a newly collected card the one future installments are charged to.

        The token must belong to the customer's own processor profile. With
        ``plan_id`` only that plan is updated; otherwise every active or
        overdue plan of the customer is.

        Raises:
            PaymentMethodOwnershipException: If the token belongs to another profile
        """
        customer = await self._get_customer(customer_id)

        if plan_id:
            plans = [await self._get_owned_plan(customer_id, plan_id)]
        else:
            plans = await self._plan_repo.get_by_customer_id(customer_id, CHARGEABLE_PLAN_STATUSES)

        if not customer.processor_customer_ref:
            logger.warning(
                "payment_method_without_profile",
                customer_id=customer_id,
            )
            raise PaymentMethodOwnershipException(payment_method_ref)

        context = await self._context_resolver.resolve(customer.tenant_id)
        processor = self._processor_factory(context)

        card = await processor.retrieve_payment_method(payment_method_ref)
        if card.customer_ref != customer.processor_customer_ref:
            logger.warning(
                "payment_method_ownership_mismatch",
                customer_id=customer_id,
            )
            raise PaymentMethodOwnershipException(payment_method_ref)

        await processor.set_default_payment_method(customer.processor_customer_ref, payment_method_ref)

        updated: List[str] = []
        for plan in plans:
            await self._plan_repo.update_plan(
                plan.id,
                processor_payment_method_ref=payment_method_ref,
                processor_customer_ref=customer.processor_customer_ref,
            )
            updated.append(plan.id)

        await self._plan_repo.commit()

        logger.info(
            "payment_method_replaced",
            customer_id=customer_id,
            plans_updated=len(updated),
        )

        return PaymentMethodUpdateResponse(
            customer_id=customer_id,
            payment_method_id=payment_method_ref,
            updated_plan_ids=updated,
            card=CardDTO.from_details(card),
        )

    async def get_card(self, customer_id: str, plan_id: Optional[str] = None) -> Optional[CardDTO]:
        """Display details of the card on file, or None when there is none."""
        customer = await self._get_customer(customer_id)

        payment_method_ref = None
        if plan_id:
            plan = await self._get_owned_plan(customer_id, plan_id)
            payment_method_ref = plan.processor_payment_method_ref

        if not customer.processor_customer_ref and not payment_method_ref:
            return None

        context = await self._context_resolver.resolve(customer.tenant_id)
        processor = self._processor_factory(context)

        if payment_method_ref is None:
            payment_method_ref = await processor.get_default_payment_method(
                customer.processor_customer_ref
            )
            if payment_method_ref is None:
                return None

        card = await processor.retrieve_payment_method(payment_method_ref)
        return CardDTO.from_details(card)

    async def _get_customer(self, customer_id: str) -> CustomerPaymentProfile:
        customer = await self._customer_repo.get(customer_id)
        if customer is None:
            raise CustomerNotFoundException(customer_id)
        return customer

    async def _get_owned_plan(self, customer_id: str, plan_id: str) -> InstallmentPlan:
        plan = await self._plan_repo.get_by_id(plan_id)
        if plan is None or plan.customer_id != customer_id:
            raise PlanNotFoundException(plan_id)
        return plan
