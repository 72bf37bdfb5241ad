"""Repository interfaces for data persistence."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Iterable, List, Optional

from fleet_billing.domain.entities import (
    CustomerPaymentProfile,
    InstallmentCandidate,
    InstallmentNotification,
    InstallmentPlan,
    InstallmentStatus,
    LedgerEntry,
    NotificationType,
    Payment,
    PaymentApplication,
    PlanStatus,
    Rental,
    ScheduledInstallment,
    TenantRecord,
)


class TenantRepository(ABC):
    """Read-only access to tenant payment settings."""

    @abstractmethod
    async def get(self, tenant_id: str) -> Optional[TenantRecord]:
        """
        Retrieve a tenant's payment settings.

        Args:
            tenant_id: The tenant's identifier

        Returns:
            The tenant record if found, None otherwise
        """
        ...


class CustomerRepository(ABC):
    """Customer payment profiles."""

    @abstractmethod
    async def get(self, customer_id: str) -> Optional[CustomerPaymentProfile]:
        ...

    @abstractmethod
    async def set_processor_customer_ref(self, customer_id: str, customer_ref: str) -> None:
        """Store the processor-side customer id for later reuse."""
        ...


class PlanRepository(ABC):
    """
    Abstract repository for InstallmentPlan persistence.

    Every installment status change goes through ``claim_installment``,
    ``transition_installment`` or ``release_installment_claim``, each a
    single conditional UPDATE that reports whether it won.
    """

    @abstractmethod
    async def save(self, plan: InstallmentPlan) -> InstallmentPlan:
        """
        Persist a plan with its installments.

        Args:
            plan: The plan to save

        Returns:
            The saved plan
        """
        ...

    @abstractmethod
    async def get_by_id(self, plan_id: str) -> Optional[InstallmentPlan]:
        """
        Retrieve a plan by ID, with installments ordered by number.

        Args:
            plan_id: The plan's unique identifier

        Returns:
            The plan if found, None otherwise
        """
        ...

    @abstractmethod
    async def get_by_rental_id(self, rental_id: str) -> List[InstallmentPlan]:
        """
        Retrieve all plans of a rental.

        Returns:
            Plans ordered by created_at descending
        """
        ...

    @abstractmethod
    async def get_open_plan_for_rental(self, rental_id: str) -> Optional[InstallmentPlan]:
        """Retrieve the rental's non-terminal plan, if any."""
        ...

    @abstractmethod
    async def get_by_customer_id(
        self,
        customer_id: str,
        statuses: Optional[Iterable[PlanStatus]] = None,
    ) -> List[InstallmentPlan]:
        """Retrieve a customer's plans, optionally filtered by status."""
        ...

    @abstractmethod
    async def get_installment(self, installment_id: str) -> Optional[ScheduledInstallment]:
        ...

    @abstractmethod
    async def get_due_candidates(self, today: date) -> List[InstallmentCandidate]:
        """
        Scheduled installments due on or before ``today`` on active or
        overdue plans, oldest due date first.
        """
        ...

    @abstractmethod
    async def get_failed_candidates(self) -> List[InstallmentCandidate]:
        """Failed installments on active or overdue plans."""
        ...

    @abstractmethod
    async def get_stale_processing(self, cutoff: datetime) -> List[InstallmentCandidate]:
        """Processing installments last attempted at or before ``cutoff``."""
        ...

    @abstractmethod
    async def get_installments_due_on(self, due_date: date) -> List[ScheduledInstallment]:
        """Scheduled installments of active plans due exactly on ``due_date``."""
        ...

    @abstractmethod
    async def claim_installment(
        self,
        installment_id: str,
        expected_status: InstallmentStatus,
        attempted_at: datetime,
    ) -> bool:
        """
        Move an installment to processing if it is still in ``expected_status``.

        Returns:
            True if this caller won the claim
        """
        ...

    @abstractmethod
    async def release_installment_claim(
        self,
        installment_id: str,
        prior_status: InstallmentStatus,
        reason: Optional[str] = None,
    ) -> bool:
        """Return a processing installment to the status it was claimed from."""
        ...

    @abstractmethod
    async def claim_stale_installment(
        self,
        installment_id: str,
        cutoff: datetime,
        attempted_at: datetime,
    ) -> bool:
        """
        Take over a stale processing installment.

        Succeeds only while the installment is still processing and its last
        attempt is at or before ``cutoff``; stamps ``attempted_at`` so a
        concurrent sweep skips it.
        """
        ...

    @abstractmethod
    async def record_processor_ref(self, installment_id: str, processor_payment_ref: str) -> bool:
        """Store the processor intent on a processing installment."""
        ...

    @abstractmethod
    async def transition_installment(
        self,
        installment_id: str,
        target: InstallmentStatus,
        **fields,
    ) -> bool:
        """
        Move an installment to ``target`` from any state allowed to reach it.

        Args:
            installment_id: The installment to move
            target: Destination status
            **fields: Extra columns to write in the same UPDATE

        Returns:
            True if the row moved, False if its current state forbids it
        """
        ...

    @abstractmethod
    async def record_installment_paid(self, plan_id: str, amount_cents: int) -> None:
        """Atomically add one paid installment and its amount to plan totals."""
        ...

    @abstractmethod
    async def transition_plan(self, plan_id: str, target: PlanStatus, **fields) -> bool:
        """Move a plan to ``target`` if its current status allows it."""
        ...

    @abstractmethod
    async def update_plan(self, plan_id: str, **fields) -> None:
        """Write plan columns without touching its status."""
        ...

    @abstractmethod
    async def cancel_open_installments(self, plan_id: str) -> int:
        """Cancel every installment of a plan that is not paid yet."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """Make all changes so far durable and visible to other workers."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Discard changes made since the last commit."""
        ...


class PaymentRepository(ABC):
    """Abstract repository for Payment persistence."""

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        ...

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        ...

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_by_session_ref(self, session_ref: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_by_intent_ref(self, intent_ref: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_by_idempotency_key(self, key: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_open_for_rental(self, rental_id: str) -> List[Payment]:
        """
        Payments of a rental that are neither refunded nor cancelled.

        Returns:
            Payments ordered by created_at ascending
        """
        ...

    @abstractmethod
    async def get_latest_with_intent(self, rental_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def get_applications(self, payment_id: str) -> List[PaymentApplication]:
        """Ledger charges a payment settled, with each charge's category."""
        ...


class LedgerRepository(ABC):
    """Append-only access to rental ledgers."""

    @abstractmethod
    async def get_entries(self, rental_id: str, category: Optional[str] = None) -> List[LedgerEntry]:
        ...

    @abstractmethod
    async def append(self, entries: List[LedgerEntry]) -> List[LedgerEntry]:
        ...


class RentalRepository(ABC):
    """The slice of the rental store the billing engine writes to."""

    @abstractmethod
    async def get(self, rental_id: str) -> Optional[Rental]:
        ...

    @abstractmethod
    async def update(self, rental: Rental) -> Rental:
        ...

    @abstractmethod
    async def set_vehicle_status(self, vehicle_id: str, status: str) -> None:
        ...

    @abstractmethod
    async def cancel_unpaid_charges(self, rental_id: str) -> int:
        """
        Cancel a rental's unpaid charges.

        Returns:
            Number of charges cancelled
        """
        ...


class NotificationRepository(ABC):
    """Record of notifications already sent per installment."""

    @abstractmethod
    async def exists(self, installment_id: str, notification_type: NotificationType) -> bool:
        ...

    @abstractmethod
    async def save(self, notification: InstallmentNotification) -> InstallmentNotification:
        ...
