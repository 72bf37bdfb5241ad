"""PostgreSQL repository implementation for installment notifications."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.domain.entities import InstallmentNotification, NotificationType
from fleet_billing.domain.interfaces import NotificationRepository
from fleet_billing.infrastructure.database.models import InstallmentNotificationModel


class PostgresNotificationRepository(NotificationRepository):
    """PostgreSQL-backed notification log."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def exists(self, installment_id: str, notification_type: NotificationType) -> bool:
        stmt = (
            select(InstallmentNotificationModel.id)
            .where(
                InstallmentNotificationModel.installment_id == installment_id,
                InstallmentNotificationModel.notification_type == notification_type.value,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def save(self, notification: InstallmentNotification) -> InstallmentNotification:
        self._session.add(
            InstallmentNotificationModel(
                id=notification.id,
                installment_id=notification.installment_id,
                tenant_id=notification.tenant_id,
                notification_type=notification.notification_type.value,
                sent_at=notification.sent_at,
            )
        )
        await self._session.flush()

        return notification
