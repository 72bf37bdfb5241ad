"""PostgreSQL repositories for tenants and customer payment profiles."""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.domain.entities import CustomerPaymentProfile, TenantRecord
from fleet_billing.domain.interfaces import CustomerRepository, TenantRepository
from fleet_billing.infrastructure.database.models import CustomerModel, TenantModel


class PostgresTenantRepository(TenantRepository):
    """Read-only tenant settings lookup."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, tenant_id: str) -> Optional[TenantRecord]:
        result = await self._session.execute(
            select(TenantModel).where(TenantModel.id == tenant_id)
        )
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return TenantRecord(
            tenant_id=model.id,
            processor_mode=model.processor_mode,
            merchant_account_id=model.merchant_account_id,
            onboarding_complete=bool(model.onboarding_complete),
        )


class PostgresCustomerRepository(CustomerRepository):
    """PostgreSQL-backed customer payment profile repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, customer_id: str) -> Optional[CustomerPaymentProfile]:
        result = await self._session.execute(
            select(CustomerModel)
            .where(CustomerModel.id == customer_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()

        if model is None:
            return None

        return CustomerPaymentProfile(
            customer_id=model.id,
            tenant_id=model.tenant_id,
            email=model.email,
            name=model.name,
            phone=model.phone,
            processor_customer_ref=model.processor_customer_ref,
        )

    async def set_processor_customer_ref(self, customer_id: str, customer_ref: str) -> None:
        await self._session.execute(
            update(CustomerModel)
            .where(CustomerModel.id == customer_id)
            .values(processor_customer_ref=customer_ref)
            .execution_options(synchronize_session=False)
        )
