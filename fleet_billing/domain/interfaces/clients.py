"""External client interfaces."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from fleet_billing.domain.entities import (
    CardDetails,
    ChargeResult,
    CheckoutSession,
    CheckoutSessionRequest,
    CustomerPaymentProfile,
    PaymentIntentInfo,
    RefundResult,
    ScheduledInstallment,
    SetupIntentInfo,
)


class PaymentProcessorClient(ABC):
    """
    Abstract client for the card payment processor.

    One instance is bound to a single tenant payment context (mode and
    merchant account); build a new one per job or request.
    """

    @abstractmethod
    async def create_customer(
        self,
        email: Optional[str],
        name: Optional[str],
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Create a processor-side customer profile.

        Returns:
            The processor customer reference

        Raises:
            ProcessorException: If the processor rejects the request
        """
        ...

    @abstractmethod
    async def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:
        """
        Open a hosted checkout page that also saves the card for off-session use.

        Raises:
            ProcessorException: If the processor rejects the request
        """
        ...

    @abstractmethod
    async def retrieve_checkout_session(self, session_ref: str) -> CheckoutSession:
        ...

    @abstractmethod
    async def charge_off_session(
        self,
        customer_ref: str,
        payment_method_ref: str,
        amount_cents: int,
        description: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> ChargeResult:
        """
        Charge a stored card without the customer present.

        Args:
            customer_ref: Processor customer reference
            payment_method_ref: Stored payment method token
            amount_cents: Amount to charge
            description: Statement description
            idempotency_key: Key that makes a repeated request return
                the original outcome instead of charging again
            metadata: Extra key/value pairs stored on the charge

        Returns:
            The accepted charge. Its status is ``succeeded`` or, while the
            money is still in flight, ``processing``; a processing intent
            must be looked up later rather than charged again.

        Raises:
            CardDeclinedException: If the card was declined
            PaymentNotCompletedException: If the intent ended in a failed
                state (``requires_payment_method``, ``requires_action``
                or ``canceled``)
            ProcessorException: For any other processor failure
        """
        ...

    @abstractmethod
    async def retrieve_payment_intent(self, intent_ref: str) -> PaymentIntentInfo:
        ...

    @abstractmethod
    async def cancel_payment_intent(self, intent_ref: str) -> None:
        """Release an uncaptured pre-authorization hold."""
        ...

    @abstractmethod
    async def create_refund(
        self,
        intent_ref: str,
        amount_cents: int,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        ...

    @abstractmethod
    async def create_setup_intent(
        self,
        customer_ref: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> SetupIntentInfo:
        ...

    @abstractmethod
    async def retrieve_payment_method(self, payment_method_ref: str) -> CardDetails:
        ...

    @abstractmethod
    async def set_default_payment_method(self, customer_ref: str, payment_method_ref: str) -> None:
        ...

    @abstractmethod
    async def get_default_payment_method(self, customer_ref: str) -> Optional[str]:
        ...


class NotificationClient(ABC):
    """
    Abstract client for customer notifications.

    Sends receipts, failure notices, reminders, and refund notices.
    """

    @abstractmethod
    async def send_installment_receipt(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
        payment_id: str,
    ) -> bool:
        """
        Tell the customer an installment was collected.

        Returns:
            True if the notification was delivered successfully

        Note:
            Implementations should handle retries with backoff.
        """
        ...

    @abstractmethod
    async def send_installment_failed(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
        reason: str,
    ) -> bool:
        ...

    @abstractmethod
    async def send_installment_reminder(
        self,
        installment: ScheduledInstallment,
        customer: Optional[CustomerPaymentProfile],
    ) -> bool:
        ...

    @abstractmethod
    async def send_refund_processed(
        self,
        rental_id: str,
        customer_id: str,
        total_refunded_cents: int,
        reason: Optional[str],
    ) -> bool:
        ...
