"""PostgreSQL repository implementation for rentals, vehicles and rental charges."""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.domain.entities import (
    ApprovalStatus,
    ChargeStatus,
    Rental,
    RentalStatus,
)
from fleet_billing.domain.interfaces import RentalRepository
from fleet_billing.infrastructure.database.models import (
    RentalChargeModel,
    RentalModel,
    VehicleModel,
)


class PostgresRentalRepository(RentalRepository):
    """PostgreSQL-backed rental repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, rental_id: str) -> Optional[Rental]:
        model = await self._get_model(rental_id)
        if model is None:
            return None

        return Rental(
            id=model.id,
            tenant_id=model.tenant_id,
            customer_id=model.customer_id,
            vehicle_id=model.vehicle_id,
            status=RentalStatus(model.status),
            approval_status=ApprovalStatus(model.approval_status),
            payment_status=model.payment_status,
            cancellation_reason=model.cancellation_reason,
        )

    async def update(self, rental: Rental) -> Rental:
        model = await self._get_model(rental.id)
        if model is None:
            return rental

        model.status = rental.status.value
        model.approval_status = rental.approval_status.value
        model.payment_status = rental.payment_status
        model.cancellation_reason = rental.cancellation_reason
        await self._session.flush()

        return rental

    async def set_vehicle_status(self, vehicle_id: str, status: str) -> None:
        stmt = (
            update(VehicleModel)
            .where(VehicleModel.id == vehicle_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def cancel_unpaid_charges(self, rental_id: str) -> int:
        stmt = (
            update(RentalChargeModel)
            .where(
                RentalChargeModel.rental_id == rental_id,
                RentalChargeModel.status == ChargeStatus.UNPAID.value,
            )
            .values(status=ChargeStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        return result.rowcount

    async def _get_model(self, rental_id: str) -> Optional[RentalModel]:
        stmt = (
            select(RentalModel)
            .where(RentalModel.id == rental_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
