"""PostgreSQL repository implementation for the rental ledger."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.domain.entities import LedgerEntry, LedgerEntryType
from fleet_billing.domain.interfaces import LedgerRepository
from fleet_billing.infrastructure.database.models import LedgerEntryModel


class PostgresLedgerRepository(LedgerRepository):
    """PostgreSQL-backed ledger repository. Rows are only ever appended."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_entries(self, rental_id: str, category: Optional[str] = None) -> List[LedgerEntry]:
        stmt = (
            select(LedgerEntryModel)
            .where(LedgerEntryModel.rental_id == rental_id)
            .order_by(LedgerEntryModel.entry_date, LedgerEntryModel.created_at)
        )
        if category is not None:
            stmt = stmt.where(LedgerEntryModel.category == category)

        result = await self._session.execute(stmt)

        return [self._to_entity(model) for model in result.scalars().all()]

    async def append(self, entries: List[LedgerEntry]) -> List[LedgerEntry]:
        for entry in entries:
            self._session.add(
                LedgerEntryModel(
                    id=entry.id,
                    rental_id=entry.rental_id,
                    customer_id=entry.customer_id,
                    tenant_id=entry.tenant_id,
                    type=entry.type.value,
                    category=entry.category,
                    amount_cents=entry.amount_cents,
                    remaining_cents=entry.remaining_cents,
                    entry_date=entry.entry_date,
                    reference=entry.reference,
                )
            )
        await self._session.flush()

        return entries

    def _to_entity(self, model: LedgerEntryModel) -> LedgerEntry:
        return LedgerEntry(
            id=model.id,
            rental_id=model.rental_id,
            customer_id=model.customer_id,
            tenant_id=model.tenant_id,
            type=LedgerEntryType(model.type),
            category=model.category,
            amount_cents=model.amount_cents,
            remaining_cents=model.remaining_cents,
            entry_date=model.entry_date,
            reference=model.reference,
        )
