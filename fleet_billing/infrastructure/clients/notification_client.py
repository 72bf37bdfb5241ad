"""HTTP implementation of NotificationClient."""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from fleet_billing.core.config import settings
from fleet_billing.core.metrics import record_notification
from fleet_billing.domain.entities import CustomerPaymentProfile, ScheduledInstallment
from fleet_billing.domain.interfaces import NotificationClient

logger = structlog.get_logger(__name__)


class HttpNotificationClient(NotificationClient):
    """
    HTTP client for the notification service.

    Posts events with retry logic and exponential backoff. Never raises;
    delivery problems are logged and reported as False.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        self._base_url = base_url or settings.notification_webhook_url
        self._timeout = timeout or settings.notification_timeout
        self._max_retries = max_retries or settings.notification_max_retries

    async def send_installment_receipt(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
        payment_id: str,
    ) -> bool:
        payload = self._installment_payload("installment_paid", installment, customer)
        payload["payment_id"] = payment_id

        return await self._send(payload, "receipt")

    async def send_installment_failed(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
        reason: str,
    ) -> bool:
        payload = self._installment_payload("installment_failed", installment, customer)
        payload["reason"] = reason
        payload["failure_count"] = installment.failure_count

        return await self._send(payload, "failure")

    async def send_installment_reminder(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
    ) -> bool:
        payload = self._installment_payload("installment_reminder", installment, customer)

        return await self._send(payload, "reminder")

    async def send_refund_processed(
        self,
        rental_id: str,
        customer_id: str,
        total_refunded_cents: int,
        reason: Optional[str],
    ) -> bool:
        payload = {
            "event": "refund_processed",
            "rental_id": rental_id,
            "customer_id": customer_id,
            "total_refunded_cents": total_refunded_cents,
            "reason": reason,
            "sent_at": datetime.utcnow().isoformat() + "Z",
        }

        return await self._send(payload, "refund")

    def _installment_payload(
        self,
        event: str,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
    ) -> Dict[str, Any]:
        return {
            "event": event,
            "tenant_id": installment.tenant_id,
            "rental_id": installment.rental_id,
            "customer_id": installment.customer_id,
            "customer_email": customer.email if customer else None,
            "customer_name": customer.name if customer else None,
            "installment_id": installment.id,
            "installment_number": installment.installment_number,
            "amount_cents": installment.amount_cents,
            "due_date": installment.due_date.isoformat(),
            "sent_at": datetime.utcnow().isoformat() + "Z",
        }

    async def _send(self, payload: Dict[str, Any], notification_type: str) -> bool:
        """
        Post a notification with retry logic.

        Uses exponential backoff: 0.1s, 0.2s, 0.4s, ...
        """
        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        self._base_url,
                        json=payload,
                        headers={"Content-Type": "application/json"},
                    )

                if response.status_code < 400:
                    logger.info(
                        "notification_sent",
                        notification_type=notification_type,
                        status_code=response.status_code,
                    )
                    record_notification(notification_type, success=True)
                    return True

                logger.warning(
                    "notification_failed",
                    notification_type=notification_type,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                    response=response.text[:200],
                )

            except httpx.TimeoutException:
                logger.warning(
                    "notification_timeout",
                    notification_type=notification_type,
                    attempt=attempt + 1,
                )
            except httpx.HTTPError as e:
                logger.error(
                    "notification_error",
                    notification_type=notification_type,
                    attempt=attempt + 1,
                    error=str(e),
                )

            if attempt < self._max_retries - 1:
                delay = 2 ** attempt * 0.1
                await asyncio.sleep(delay)

        logger.error(
            "notification_exhausted_retries",
            notification_type=notification_type,
            max_retries=self._max_retries,
        )
        record_notification(notification_type, success=False)
        return False
