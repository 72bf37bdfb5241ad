"""Installment plan construction."""

from uuid import uuid4

import structlog

from fleet_billing.core.metrics import record_plan_created
from fleet_billing.domain.entities import (
    InstallmentPlan,
    InstallmentStatus,
    PlanConfig,
    ScheduledInstallment,
)
from fleet_billing.domain.exceptions import (
    InvalidPlanRequestException,
    PlanAlreadyExistsException,
)
from fleet_billing.domain.interfaces import PlanRepository
from fleet_billing.service.installments import (
    InstallmentSettings,
    build_schedule,
    installment_settings,
)
from fleet_billing.application.dto import PlanRequest

logger = structlog.get_logger(__name__)


class InstallmentPlanBuilder:
    """Turns a plan request into a persisted plan with its schedule."""

    def __init__(
        self,
        plan_repository: PlanRepository,
        settings: InstallmentSettings = installment_settings,
    ):
        self._plan_repo = plan_repository
        self._settings = settings

    def build(self, request: PlanRequest) -> InstallmentPlan:
        """
        Build a plan and its installments in memory.

        A folded installment #1 is created already claimed, in processing,
        since the checkout collects it.

        Raises:
            InvalidPlanRequestException: If the request fails validation
            InvalidInstallmentCountException: If N is out of range
            InvalidPlanAmountException: If any amount would not be positive
        """
        errors = request.validate()
        if errors:
            raise InvalidPlanRequestException("; ".join(errors))

        config = PlanConfig(
            charge_first_upfront=request.charge_first_upfront,
            what_gets_split=request.what_gets_split,
            grace_period_days=self._pick(request.grace_period_days, self._settings.grace_period_days),
            max_retry_attempts=self._pick(request.max_retry_attempts, self._settings.max_retry_attempts),
            retry_interval_days=self._pick(request.retry_interval_days, self._settings.retry_interval_days),
        )

        lines = build_schedule(
            total_cents=request.total_installable_cents,
            number_of_installments=request.number_of_installments,
            start_date=request.start_date,
            plan_type=request.plan_type,
            charge_first_upfront=request.charge_first_upfront,
            first_installment_cents=request.first_installment_cents,
            settings=self._settings,
        )

        plan_id = str(uuid4())
        installments = [
            ScheduledInstallment(
                plan_id=plan_id,
                rental_id=request.rental_id,
                customer_id=request.customer_id,
                tenant_id=request.tenant_id,
                installment_number=line.installment_number,
                amount_cents=line.amount_cents,
                due_date=line.due_date,
                status=(
                    InstallmentStatus.PROCESSING
                    if line.charged_upfront
                    else InstallmentStatus.SCHEDULED
                ),
            )
            for line in lines
        ]

        folded_cents = sum(line.amount_cents for line in lines if line.charged_upfront)
        regular = [line for line in lines if not line.charged_upfront]

        return InstallmentPlan(
            id=plan_id,
            rental_id=request.rental_id,
            tenant_id=request.tenant_id,
            customer_id=request.customer_id,
            plan_type=request.plan_type,
            number_of_installments=request.number_of_installments,
            installment_amount_cents=regular[0].amount_cents,
            upfront_amount_cents=request.upfront_base_cents + folded_cents,
            total_installable_cents=request.total_installable_cents,
            config=config,
            installments=installments,
            next_due_date=regular[0].due_date,
        )

    async def ensure_no_open_plan(self, rental_id: str) -> None:
        """
        Raises:
            PlanAlreadyExistsException: If the rental has a non-terminal plan
        """
        existing = await self._plan_repo.get_open_plan_for_rental(rental_id)
        if existing is not None:
            logger.warning(
                "plan_already_exists",
                rental_id=rental_id,
                plan_id=existing.id,
                status=existing.status.value,
            )
            raise PlanAlreadyExistsException(rental_id, existing.id)

    async def create_plan(self, request: PlanRequest) -> InstallmentPlan:
        """Build and persist a plan; a rental with an open plan gets no new rows."""
        await self.ensure_no_open_plan(request.rental_id)

        plan = self.build(request)
        await self._plan_repo.save(plan)

        record_plan_created(plan.plan_type.value)

        logger.info(
            "plan_created",
            plan_id=plan.id,
            rental_id=plan.rental_id,
            plan_type=plan.plan_type.value,
            num_installments=plan.number_of_installments,
            total_installable_cents=plan.total_installable_cents,
        )

        return plan

    @staticmethod
    def _pick(value, default):
        return default if value is None else value
