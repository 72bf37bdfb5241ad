"""PostgreSQL repository implementation for installment plans."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fleet_billing.domain.entities import (
    CHARGEABLE_PLAN_STATUSES,
    TERMINAL_PLAN_STATUSES,
    InstallmentCandidate,
    InstallmentPlan,
    InstallmentStatus,
    PlanConfig,
    PlanStatus,
    PlanType,
    ScheduledInstallment,
    plan_sources_for,
    sources_for,
)
from fleet_billing.domain.interfaces import PlanRepository
from fleet_billing.infrastructure.database.models import (
    InstallmentPlanModel,
    ScheduledInstallmentModel,
)


def _column_values(fields: dict) -> dict:
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }


def _values(statuses: Iterable[Enum]) -> List[str]:
    return [status.value for status in statuses]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class PostgresPlanRepository(PlanRepository):
    """PostgreSQL-backed installment plan repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, plan: InstallmentPlan) -> InstallmentPlan:
        model = InstallmentPlanModel(
            id=plan.id,
            rental_id=plan.rental_id,
            tenant_id=plan.tenant_id,
            customer_id=plan.customer_id,
            plan_type=plan.plan_type.value,
            number_of_installments=plan.number_of_installments,
            installment_amount_cents=plan.installment_amount_cents,
            upfront_amount_cents=plan.upfront_amount_cents,
            total_installable_cents=plan.total_installable_cents,
            upfront_paid=plan.upfront_paid,
            upfront_payment_id=plan.upfront_payment_id,
            paid_installments=plan.paid_installments,
            total_paid_cents=plan.total_paid_cents,
            processor_customer_ref=plan.processor_customer_ref,
            processor_payment_method_ref=plan.processor_payment_method_ref,
            status=plan.status.value,
            next_due_date=plan.next_due_date,
            config=plan.config.to_dict(),
            created_at=plan.created_at,
            updated_at=plan.updated_at,
        )

        for installment in plan.installments:
            model.installments.append(
                ScheduledInstallmentModel(
                    id=installment.id,
                    plan_id=plan.id,
                    rental_id=installment.rental_id,
                    customer_id=installment.customer_id,
                    tenant_id=installment.tenant_id,
                    installment_number=installment.installment_number,
                    amount_cents=installment.amount_cents,
                    due_date=installment.due_date,
                    status=installment.status.value,
                    failure_count=installment.failure_count,
                )
            )

        self._session.add(model)
        await self._session.flush()

        return plan

    async def get_by_id(self, plan_id: str) -> Optional[InstallmentPlan]:
        stmt = (
            select(InstallmentPlanModel)
            .options(selectinload(InstallmentPlanModel.installments))
            .where(InstallmentPlanModel.id == plan_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return self._to_entity(model)

    async def get_by_rental_id(self, rental_id: str) -> List[InstallmentPlan]:
        stmt = (
            select(InstallmentPlanModel)
            .options(selectinload(InstallmentPlanModel.installments))
            .where(InstallmentPlanModel.rental_id == rental_id)
            .order_by(InstallmentPlanModel.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._to_entity(model) for model in result.scalars().all()]

    async def get_open_plan_for_rental(self, rental_id: str) -> Optional[InstallmentPlan]:
        stmt = (
            select(InstallmentPlanModel)
            .options(selectinload(InstallmentPlanModel.installments))
            .where(
                InstallmentPlanModel.rental_id == rental_id,
                InstallmentPlanModel.status.not_in(_values(TERMINAL_PLAN_STATUSES)),
            )
            .order_by(InstallmentPlanModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        return self._to_entity(model) if model else None

    async def get_by_customer_id(
        self,
        customer_id: str,
        statuses: Optional[Iterable[PlanStatus]] = None,
    ) -> List[InstallmentPlan]:
        stmt = (
            select(InstallmentPlanModel)
            .options(selectinload(InstallmentPlanModel.installments))
            .where(InstallmentPlanModel.customer_id == customer_id)
            .order_by(InstallmentPlanModel.created_at.desc())
            .execution_options(populate_existing=True)
        )
        if statuses is not None:
            stmt = stmt.where(InstallmentPlanModel.status.in_(_values(statuses)))

        result = await self._session.execute(stmt)

        return [self._to_entity(model) for model in result.scalars().all()]

    async def get_installment(self, installment_id: str) -> Optional[ScheduledInstallment]:
        stmt = (
            select(ScheduledInstallmentModel)
            .where(ScheduledInstallmentModel.id == installment_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        return self._installment_to_entity(model) if model else None

    async def get_due_candidates(self, today: date) -> List[InstallmentCandidate]:
        stmt = (
            select(ScheduledInstallmentModel, InstallmentPlanModel)
            .join(InstallmentPlanModel, ScheduledInstallmentModel.plan_id == InstallmentPlanModel.id)
            .where(
                ScheduledInstallmentModel.status == InstallmentStatus.SCHEDULED.value,
                ScheduledInstallmentModel.due_date <= today,
                InstallmentPlanModel.status.in_(_values(CHARGEABLE_PLAN_STATUSES)),
            )
            .order_by(ScheduledInstallmentModel.due_date, ScheduledInstallmentModel.installment_number)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._to_candidate(inst, plan) for inst, plan in result.all()]

    async def get_failed_candidates(self) -> List[InstallmentCandidate]:
        stmt = (
            select(ScheduledInstallmentModel, InstallmentPlanModel)
            .join(InstallmentPlanModel, ScheduledInstallmentModel.plan_id == InstallmentPlanModel.id)
            .where(
                ScheduledInstallmentModel.status == InstallmentStatus.FAILED.value,
                InstallmentPlanModel.status.in_(_values(CHARGEABLE_PLAN_STATUSES)),
            )
            .order_by(ScheduledInstallmentModel.due_date, ScheduledInstallmentModel.installment_number)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._to_candidate(inst, plan) for inst, plan in result.all()]

    async def get_stale_processing(self, cutoff: datetime) -> List[InstallmentCandidate]:
        """Installments claimed at or before ``cutoff`` that never settled."""
        stmt = (
            select(ScheduledInstallmentModel, InstallmentPlanModel)
            .join(InstallmentPlanModel, ScheduledInstallmentModel.plan_id == InstallmentPlanModel.id)
            .where(
                ScheduledInstallmentModel.status == InstallmentStatus.PROCESSING.value,
                or_(
                    ScheduledInstallmentModel.last_attempted_at.is_(None),
                    ScheduledInstallmentModel.last_attempted_at <= _naive_utc(cutoff),
                ),
            )
            .order_by(ScheduledInstallmentModel.due_date, ScheduledInstallmentModel.installment_number)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._to_candidate(inst, plan) for inst, plan in result.all()]

    async def get_installments_due_on(self, due_date: date) -> List[ScheduledInstallment]:
        stmt = (
            select(ScheduledInstallmentModel)
            .join(InstallmentPlanModel, ScheduledInstallmentModel.plan_id == InstallmentPlanModel.id)
            .where(
                ScheduledInstallmentModel.status == InstallmentStatus.SCHEDULED.value,
                ScheduledInstallmentModel.due_date == due_date,
                InstallmentPlanModel.status == PlanStatus.ACTIVE.value,
            )
            .order_by(ScheduledInstallmentModel.installment_number)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._installment_to_entity(model) for model in result.scalars().all()]

    async def claim_installment(
        self,
        installment_id: str,
        expected_status: InstallmentStatus,
        attempted_at: datetime,
    ) -> bool:
        if expected_status not in sources_for(InstallmentStatus.PROCESSING):
            return False

        return await self._conditional_update(
            installment_id,
            [expected_status],
            status=InstallmentStatus.PROCESSING,
            last_attempted_at=attempted_at,
        )

    async def release_installment_claim(
        self,
        installment_id: str,
        prior_status: InstallmentStatus,
        reason: Optional[str] = None,
    ) -> bool:
        # Claims only originate from these states.
        if prior_status not in sources_for(InstallmentStatus.PROCESSING):
            return False

        fields = {"status": prior_status}
        if reason is not None:
            fields["last_failure_reason"] = reason

        return await self._conditional_update(
            installment_id,
            [InstallmentStatus.PROCESSING],
            **fields,
        )

    async def claim_stale_installment(
        self,
        installment_id: str,
        cutoff: datetime,
        attempted_at: datetime,
    ) -> bool:
        stmt = (
            update(ScheduledInstallmentModel)
            .where(
                ScheduledInstallmentModel.id == installment_id,
                ScheduledInstallmentModel.status == InstallmentStatus.PROCESSING.value,
                or_(
                    ScheduledInstallmentModel.last_attempted_at.is_(None),
                    ScheduledInstallmentModel.last_attempted_at <= _naive_utc(cutoff),
                ),
            )
            .values(last_attempted_at=_naive_utc(attempted_at))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        return result.rowcount == 1

    async def record_processor_ref(self, installment_id: str, processor_payment_ref: str) -> bool:
        return await self._conditional_update(
            installment_id,
            [InstallmentStatus.PROCESSING],
            processor_payment_ref=processor_payment_ref,
        )

    async def transition_installment(
        self,
        installment_id: str,
        target: InstallmentStatus,
        **fields,
    ) -> bool:
        return await self._conditional_update(
            installment_id,
            sources_for(target),
            status=target,
            **fields,
        )

    async def record_installment_paid(self, plan_id: str, amount_cents: int) -> None:
        stmt = (
            update(InstallmentPlanModel)
            .where(InstallmentPlanModel.id == plan_id)
            .values(
                paid_installments=InstallmentPlanModel.paid_installments + 1,
                total_paid_cents=InstallmentPlanModel.total_paid_cents + amount_cents,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def transition_plan(self, plan_id: str, target: PlanStatus, **fields) -> bool:
        values = _column_values(fields)
        values.update(status=target.value, updated_at=datetime.utcnow())

        stmt = (
            update(InstallmentPlanModel)
            .where(
                InstallmentPlanModel.id == plan_id,
                InstallmentPlanModel.status.in_(_values(plan_sources_for(target))),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        return result.rowcount == 1

    async def update_plan(self, plan_id: str, **fields) -> None:
        values = _column_values(fields)
        values["updated_at"] = datetime.utcnow()

        stmt = (
            update(InstallmentPlanModel)
            .where(InstallmentPlanModel.id == plan_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def cancel_open_installments(self, plan_id: str) -> int:
        stmt = (
            update(ScheduledInstallmentModel)
            .where(
                ScheduledInstallmentModel.plan_id == plan_id,
                ScheduledInstallmentModel.status.in_(_values(sources_for(InstallmentStatus.CANCELLED))),
            )
            .values(status=InstallmentStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        return result.rowcount

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def _conditional_update(
        self,
        installment_id: str,
        from_statuses: Iterable[InstallmentStatus],
        **fields,
    ) -> bool:
        stmt = (
            update(ScheduledInstallmentModel)
            .where(
                ScheduledInstallmentModel.id == installment_id,
                ScheduledInstallmentModel.status.in_(_values(from_statuses)),
            )
            .values(**_column_values(fields))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        return result.rowcount == 1

    def _to_candidate(
        self,
        inst: ScheduledInstallmentModel,
        plan: InstallmentPlanModel,
    ) -> InstallmentCandidate:
        return InstallmentCandidate(
            installment=self._installment_to_entity(inst),
            plan_status=PlanStatus(plan.status),
            config=PlanConfig.from_dict(plan.config),
            processor_customer_ref=plan.processor_customer_ref,
            processor_payment_method_ref=plan.processor_payment_method_ref,
        )

    def _installment_to_entity(self, model: ScheduledInstallmentModel) -> ScheduledInstallment:
        return ScheduledInstallment(
            id=model.id,
            plan_id=model.plan_id,
            rental_id=model.rental_id,
            customer_id=model.customer_id,
            tenant_id=model.tenant_id,
            installment_number=model.installment_number,
            amount_cents=model.amount_cents,
            due_date=model.due_date,
            status=InstallmentStatus(model.status),
            failure_count=model.failure_count,
            last_failure_reason=model.last_failure_reason,
            last_attempted_at=_naive_utc(model.last_attempted_at),
            processor_payment_ref=model.processor_payment_ref,
            processor_charge_ref=model.processor_charge_ref,
            payment_id=model.payment_id,
            paid_at=_naive_utc(model.paid_at),
        )

    def _to_entity(self, model: InstallmentPlanModel) -> InstallmentPlan:
        return InstallmentPlan(
            id=model.id,
            rental_id=model.rental_id,
            tenant_id=model.tenant_id,
            customer_id=model.customer_id,
            plan_type=PlanType(model.plan_type),
            number_of_installments=model.number_of_installments,
            installment_amount_cents=model.installment_amount_cents,
            upfront_amount_cents=model.upfront_amount_cents,
            total_installable_cents=model.total_installable_cents,
            config=PlanConfig.from_dict(model.config),
            installments=[self._installment_to_entity(inst) for inst in model.installments],
            status=PlanStatus(model.status),
            paid_installments=model.paid_installments,
            total_paid_cents=model.total_paid_cents,
            upfront_paid=model.upfront_paid,
            upfront_payment_id=model.upfront_payment_id,
            processor_customer_ref=model.processor_customer_ref,
            processor_payment_method_ref=model.processor_payment_method_ref,
            next_due_date=model.next_due_date,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
