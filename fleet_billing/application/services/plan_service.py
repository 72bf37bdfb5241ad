"""Plan service - plan retrieval and administrative plan operations."""

from datetime import datetime
from typing import Optional

import structlog

from fleet_billing.domain.entities import (
    OUTSTANDING_INSTALLMENT_STATUSES,
    InstallmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PlanStatus,
)
from fleet_billing.domain.exceptions import (
    InstallmentNotFoundException,
    InstallmentNotPayableException,
    InvalidPlanRequestException,
    PaymentNotFoundException,
    PlanNotFoundException,
)
from fleet_billing.domain.interfaces import PaymentRepository, PlanRepository
from fleet_billing.application.dto import InstallmentDTO, PlanResponse

from .settlement import InstallmentSettlement

logger = structlog.get_logger(__name__)


class PlanService:
    """
    Application service for installment plan use cases.

    Handles plan retrieval, cancellation and manual settlement.
    """

    def __init__(
        self,
        plan_repository: PlanRepository,
        payment_repository: PaymentRepository,
        settlement: InstallmentSettlement,
    ):
        self._plan_repo = plan_repository
        self._payment_repo = payment_repository
        self._settlement = settlement

    async def get_plan(self, plan_id: str) -> PlanResponse:
        """
        Retrieve an installment plan by ID.

        Args:
            plan_id: The plan's unique identifier

        Returns:
            PlanResponse with plan details and installments

        Raises:
            PlanNotFoundException: If plan not found
        """
        plan = await self._plan_repo.get_by_id(plan_id)

        if plan is None:
            logger.warning("plan_not_found", plan_id=plan_id)
            raise PlanNotFoundException(plan_id)

        logger.info(
            "plan_retrieved",
            plan_id=plan_id,
            rental_id=plan.rental_id,
            num_installments=len(plan.installments),
        )

        return PlanResponse.from_entity(plan)

    async def get_plan_for_rental(self, rental_id: str) -> PlanResponse:
        """Most recent plan of a rental."""
        plans = await self._plan_repo.get_by_rental_id(rental_id)

        if not plans:
            logger.warning("rental_plan_not_found", rental_id=rental_id)
            raise PlanNotFoundException(f"rental {rental_id}")

        return PlanResponse.from_entity(plans[0])

    async def get_plans_by_customer(self, customer_id: str) -> list[PlanResponse]:
        plans = await self._plan_repo.get_by_customer_id(customer_id)

        logger.info(
            "customer_plans_retrieved",
            customer_id=customer_id,
            count=len(plans),
        )

        return [PlanResponse.from_entity(plan) for plan in plans]

    async def cancel_plan(self, plan_id: str, reason: Optional[str] = None) -> PlanResponse:
        """
        Cancel a plan and every installment not yet paid.

        Raises:
            PlanNotFoundException: If plan not found
            InvalidPlanRequestException: If the plan already completed or was cancelled
        """
        plan = await self._plan_repo.get_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundException(plan_id)

        if plan.is_terminal:
            raise InvalidPlanRequestException(f"Plan is already {plan.status.value}")

        await self._plan_repo.transition_plan(plan_id, PlanStatus.CANCELLED, next_due_date=None)
        cancelled = await self._plan_repo.cancel_open_installments(plan_id)
        await self._plan_repo.commit()

        logger.info(
            "plan_cancelled",
            plan_id=plan_id,
            installments_cancelled=cancelled,
            reason=reason,
        )

        return PlanResponse.from_entity(await self._plan_repo.get_by_id(plan_id))

    async def mark_installment_paid_manually(
        self,
        installment_id: str,
        payment_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> InstallmentDTO:
        """
        Record an installment as paid outside the processor.

        Without ``payment_id`` a cash payment is recorded for the
        installment amount. Marking an already paid installment again is a
        no-op.

        Raises:
            InstallmentNotFoundException: If the installment does not exist
            InstallmentNotPayableException: If it is cancelled or mid-charge
            PaymentNotFoundException: If ``payment_id`` does not exist
        """
        now = now or datetime.utcnow()

        installment = await self._plan_repo.get_installment(installment_id)
        if installment is None:
            raise InstallmentNotFoundException(installment_id)

        if installment.status == InstallmentStatus.PAID:
            logger.info("installment_already_paid", installment_id=installment_id)
            return InstallmentDTO.from_entity(installment)

        if installment.status not in OUTSTANDING_INSTALLMENT_STATUSES:
            raise InstallmentNotPayableException(
                f"Installment is {installment.status.value} and cannot be marked paid"
            )

        if payment_id is not None:
            payment = await self._payment_repo.get_by_id(payment_id)
            if payment is None:
                raise PaymentNotFoundException(payment_id)

        plan = await self._plan_repo.get_by_id(installment.plan_id)
        if plan is None:
            raise PlanNotFoundException(installment.plan_id)

        if not await self._plan_repo.claim_installment(installment.id, installment.status, now):
            raise InstallmentNotPayableException("This installment is currently being processed")

        if payment_id is None:
            payment = await self._payment_repo.save(
                Payment(
                    rental_id=installment.rental_id,
                    customer_id=installment.customer_id,
                    tenant_id=installment.tenant_id,
                    amount_cents=installment.amount_cents,
                    payment_type=PaymentType.PAYMENT,
                    method=PaymentMethod.CASH,
                    status=PaymentStatus.APPLIED,
                    target_categories=plan.config.split_categories,
                    notes=f"Installment {installment.installment_number} recorded manually",
                )
            )
            payment_id = payment.id

        await self._settlement.mark_paid(installment, payment_id=payment_id, paid_at=now)
        await self._plan_repo.commit()

        logger.info(
            "installment_marked_paid",
            installment_id=installment_id,
            plan_id=installment.plan_id,
            payment_id=payment_id,
        )

        return InstallmentDTO.from_entity(await self._plan_repo.get_installment(installment_id))
