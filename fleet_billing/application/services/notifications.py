"""Best-effort customer notification dispatch."""

from typing import Awaitable, Callable, Optional

import structlog

from fleet_billing.domain.entities import (
    InstallmentNotification,
    NotificationType,
    ScheduledInstallment,
)
from fleet_billing.domain.interfaces import (
    CustomerRepository,
    NotificationClient,
    NotificationRepository,
)

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """
    Sends installment and refund notices without ever failing the caller.

    A notice that cannot be sent is logged and dropped. Delivered
    installment notices are recorded so reminders are not sent twice.
    """

    def __init__(
        self,
        notification_client: Optional[NotificationClient],
        customer_repository: CustomerRepository,
        notification_repository: Optional[NotificationRepository] = None,
    ):
        self._client = notification_client
        self._customer_repo = customer_repository
        self._notification_repo = notification_repository

    async def installment_paid(self, installment: ScheduledInstallment, payment_id: str) -> bool:
        async def send(customer):
            return await self._client.send_installment_receipt(installment, customer, payment_id)

        return await self._deliver(NotificationType.RECEIPT, installment, send)

    async def installment_failed(self, installment: ScheduledInstallment, reason: str) -> bool:
        async def send(customer):
            return await self._client.send_installment_failed(installment, customer, reason)

        return await self._deliver(NotificationType.FAILURE, installment, send)

    async def installment_reminder(self, installment: ScheduledInstallment) -> bool:
        async def send(customer):
            return await self._client.send_installment_reminder(installment, customer)

        return await self._deliver(NotificationType.REMINDER, installment, send)

    async def refund_processed(
        self,
        rental_id: str,
        customer_id: str,
        total_refunded_cents: int,
        reason: Optional[str] = None,
    ) -> bool:
        if self._client is None:
            return False

        try:
            return await self._client.send_refund_processed(
                rental_id, customer_id, total_refunded_cents, reason
            )
        except Exception as exc:
            logger.warning(
                "refund_notification_failed",
                rental_id=rental_id,
                error=str(exc),
            )
            return False

    async def _deliver(
        self,
        notification_type: NotificationType,
        installment: ScheduledInstallment,
        send: Callable[..., Awaitable[bool]],
    ) -> bool:
        if self._client is None:
            return False

        try:
            customer = await self._customer_repo.get(installment.customer_id)
            if customer is None:
                logger.warning(
                    "notification_customer_missing",
                    installment_id=installment.id,
                    customer_id=installment.customer_id,
                )
                return False

            delivered = await send(customer)

            if delivered and self._notification_repo is not None:
                await self._notification_repo.save(
                    InstallmentNotification(
                        installment_id=installment.id,
                        tenant_id=installment.tenant_id,
                        notification_type=notification_type,
                    )
                )
            return delivered
        except Exception as exc:
            logger.warning(
                "installment_notification_failed",
                installment_id=installment.id,
                notification_type=notification_type.value,
                error=str(exc),
            )
            return False
