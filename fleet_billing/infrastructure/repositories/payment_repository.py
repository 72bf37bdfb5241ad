"""PostgreSQL repository implementation for payments."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.domain.entities import (
    CaptureStatus,
    DEFAULT_LEDGER_CATEGORY,
    Payment,
    PaymentApplication,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    RefundStatus,
)
from fleet_billing.domain.entities.payment import TERMINAL_PAYMENT_STATUSES
from fleet_billing.domain.interfaces import PaymentRepository
from fleet_billing.infrastructure.database.models import (
    LedgerEntryModel,
    PaymentApplicationModel,
    PaymentModel,
)


class PostgresPaymentRepository(PaymentRepository):
    """PostgreSQL-backed payment repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, payment: Payment) -> Payment:
        model = PaymentModel(id=payment.id, created_at=payment.created_at)
        self._apply(model, payment)

        self._session.add(model)
        await self._session.flush()

        return payment

    async def update(self, payment: Payment) -> Payment:
        model = await self._get_model(payment.id)
        if model is None:
            return await self.save(payment)

        self._apply(model, payment)
        await self._session.flush()

        return payment

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        model = await self._get_model(payment_id)
        return self._to_entity(model) if model else None

    async def get_by_session_ref(self, session_ref: str) -> Optional[Payment]:
        return await self._get_one(PaymentModel.processor_session_ref == session_ref)

    async def get_by_intent_ref(self, intent_ref: str) -> Optional[Payment]:
        return await self._get_one(PaymentModel.processor_intent_ref == intent_ref)

    async def get_by_idempotency_key(self, key: str) -> Optional[Payment]:
        return await self._get_one(PaymentModel.idempotency_key == key)

    async def get_open_for_rental(self, rental_id: str) -> List[Payment]:
        stmt = (
            select(PaymentModel)
            .where(
                PaymentModel.rental_id == rental_id,
                PaymentModel.status.not_in([s.value for s in TERMINAL_PAYMENT_STATUSES]),
            )
            .order_by(PaymentModel.created_at.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)

        return [self._to_entity(model) for model in result.scalars().all()]

    async def get_latest_with_intent(self, rental_id: str) -> Optional[Payment]:
        stmt = (
            select(PaymentModel)
            .where(
                PaymentModel.rental_id == rental_id,
                PaymentModel.processor_intent_ref.is_not(None),
            )
            .order_by(PaymentModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        return self._to_entity(model) if model else None

    async def get_applications(self, payment_id: str) -> List[PaymentApplication]:
        stmt = (
            select(PaymentApplicationModel, LedgerEntryModel.category)
            .outerjoin(
                LedgerEntryModel,
                PaymentApplicationModel.charge_entry_id == LedgerEntryModel.id,
            )
            .where(PaymentApplicationModel.payment_id == payment_id)
        )
        result = await self._session.execute(stmt)

        return [
            PaymentApplication(
                payment_id=application.payment_id,
                charge_entry_id=application.charge_entry_id,
                amount_applied_cents=application.amount_applied_cents,
                category=category or DEFAULT_LEDGER_CATEGORY,
            )
            for application, category in result.all()
        ]

    async def _get_model(self, payment_id: str) -> Optional[PaymentModel]:
        stmt = (
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_one(self, criterion) -> Optional[Payment]:
        stmt = (
            select(PaymentModel)
            .where(criterion)
            .order_by(PaymentModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        return self._to_entity(model) if model else None

    def _apply(self, model: PaymentModel, payment: Payment) -> None:
        model.rental_id = payment.rental_id
        model.customer_id = payment.customer_id
        model.tenant_id = payment.tenant_id
        model.amount_cents = payment.amount_cents
        model.method = payment.method.value
        model.payment_type = payment.payment_type.value
        model.status = payment.status.value
        model.capture_status = payment.capture_status.value if payment.capture_status else None
        model.refund_status = payment.refund_status.value
        model.processor_session_ref = payment.processor_session_ref
        model.processor_intent_ref = payment.processor_intent_ref
        model.processor_refund_ref = payment.processor_refund_ref
        model.idempotency_key = payment.idempotency_key
        model.refund_amount_cents = payment.refund_amount_cents
        model.refund_reason = payment.refund_reason
        model.refund_processed_at = payment.refund_processed_at
        model.target_categories = list(payment.target_categories)
        model.notes = payment.notes

    def _to_entity(self, model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            rental_id=model.rental_id,
            customer_id=model.customer_id,
            tenant_id=model.tenant_id,
            amount_cents=model.amount_cents,
            method=PaymentMethod(model.method),
            payment_type=PaymentType(model.payment_type),
            status=PaymentStatus(model.status),
            capture_status=CaptureStatus(model.capture_status) if model.capture_status else None,
            refund_status=RefundStatus(model.refund_status),
            processor_session_ref=model.processor_session_ref,
            processor_intent_ref=model.processor_intent_ref,
            processor_refund_ref=model.processor_refund_ref,
            idempotency_key=model.idempotency_key,
            refund_amount_cents=model.refund_amount_cents,
            refund_reason=model.refund_reason,
            refund_processed_at=model.refund_processed_at,
            target_categories=list(model.target_categories or []),
            notes=model.notes,
            created_at=model.created_at,
        )
