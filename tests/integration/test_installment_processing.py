"""
Integration tests for installment collection.

These tests verify:
1. Due installments are charged once with a per-attempt idempotency key
2. A tenant without processor credentials fails alone, not the batch
3. Retries stop once the attempt limit is reached and the plan goes overdue
4. Manual settlement counts once and reactivates an overdue plan
5. Reminders are sent once per installment
"""

from datetime import date, datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.core.dependencies import build_installment_processor, build_reminder_service
from fleet_billing.infrastructure.database.models import (
    InstallmentPlanModel,
    PaymentModel,
    ScheduledInstallmentModel,
)
from tests.integration.conftest import (
    RENTAL_ID,
    MockNotificationClient,
    MockPaymentProcessor,
    fetch_all,
    fetch_one,
    make_processor_factory,
    seed_active_plan,
    seed_rental,
)


def installment_by_number(plan, number):
    return next(inst for inst in plan.installments if inst.installment_number == number)


async def fetch_installment(session: AsyncSession, installment_id: str):
    return await fetch_one(session, ScheduledInstallmentModel, ScheduledInstallmentModel.id == installment_id)


async def fetch_plan(session: AsyncSession, plan_id: str):
    return await fetch_one(session, InstallmentPlanModel, InstallmentPlanModel.id == plan_id)


# =============================================================================
# Scheduled Collection Tests
# =============================================================================

class TestDueInstallmentRun:
    """Tests for the due-installment batch."""

    @pytest.mark.asyncio
    async def test_due_installment_is_charged_and_settled(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        first = installment_by_number(plan, 1)

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        summary = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert summary.due_count == 1
        assert summary.successful == 1
        assert mock_processor.attempted_keys == [f"installment-{first.id}-attempt-0"]
        assert mock_processor.charges[0]["amount_cents"] == 10000

        installment = await fetch_installment(test_session, first.id)
        assert installment.status == "paid"
        assert installment.payment_id is not None

        stored = await fetch_plan(test_session, plan.id)
        assert stored.paid_installments == 1
        assert stored.total_paid_cents == 10000
        assert stored.next_due_date == date(2024, 2, 15)
        assert stored.status == "active"

        payment = await fetch_one(test_session, PaymentModel, PaymentModel.id == installment.payment_id)
        assert payment.idempotency_key == f"installment-{first.id}-attempt-0"
        assert len(mock_notifier.events("receipt")) == 1

    @pytest.mark.asyncio
    async def test_installments_not_yet_due_are_left_alone(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_active_plan(test_session)

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        summary = await processor.run(today=date(2024, 1, 14), now=datetime(2024, 1, 14, 9, 0))

        assert summary.processed == 0
        assert mock_processor.attempted_keys == []

    @pytest.mark.asyncio
    async def test_second_run_does_not_charge_again(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_active_plan(test_session)

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))
        summary = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 10, 0))

        assert summary.processed == 0
        assert len(mock_processor.charges) == 1

    @pytest.mark.asyncio
    async def test_missing_card_is_recorded_as_failure(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, with_card=False)

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        summary = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert summary.failed == 1
        assert mock_processor.attempted_keys == []

        installment = await fetch_installment(test_session, installment_by_number(plan, 1).id)
        assert installment.status == "failed"
        assert installment.failure_count == 1


# =============================================================================
# Tenant Isolation Tests
# =============================================================================

class TestTenantIsolation:
    """Tests for per-tenant processor configuration inside one batch."""

    @pytest.mark.asyncio
    async def test_unconfigured_tenant_fails_without_stopping_others(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_rental(
            test_session,
            rental_id="rental-2",
            tenant_id="tenant-2",
            customer_id="customer-2",
            vehicle_id="vehicle-2",
        )
        good = await seed_active_plan(test_session)
        bad = await seed_active_plan(
            test_session,
            rental_id="rental-2",
            customer_id="customer-2",
            tenant_id="tenant-2",
        )

        processor = build_installment_processor(
            test_session,
            processor_factory=make_processor_factory(mock_processor, unconfigured_tenants={"tenant-2"}),
            notification_client=mock_notifier,
        )
        summary = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert summary.processed == 2
        assert summary.successful == 1
        assert summary.failed == 1

        good_installment = await fetch_installment(test_session, installment_by_number(good, 1).id)
        bad_installment = await fetch_installment(test_session, installment_by_number(bad, 1).id)
        assert good_installment.status == "paid"
        assert bad_installment.status == "failed"
        assert "secret key" in bad_installment.last_failure_reason

        failed = [r for r in summary.results if not r.success]
        assert failed[0].installment_id == bad_installment.id


# =============================================================================
# Retry Tests
# =============================================================================

class TestRetries:
    """Tests for declined charges and the retry limit."""

    @pytest.mark.asyncio
    async def test_retries_stop_at_the_limit(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        """
        Each attempt uses a fresh key; after the last allowed failure the
        plan is overdue and no further attempt is made.
        """
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, max_retry_attempts=2, retry_interval_days=1)
        first = installment_by_number(plan, 1)
        mock_processor.decline = True

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )

        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))
        assert (await fetch_plan(test_session, plan.id)).status == "active"

        # Interval not yet elapsed.
        early = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 18, 0))
        assert early.processed == 0

        await processor.run(today=date(2024, 1, 16), now=datetime(2024, 1, 16, 10, 0))
        await processor.run(today=date(2024, 1, 18), now=datetime(2024, 1, 18, 10, 0))

        assert mock_processor.attempted_keys == [
            f"installment-{first.id}-attempt-0",
            f"installment-{first.id}-attempt-1",
        ]

        installment = await fetch_installment(test_session, first.id)
        assert installment.status == "failed"
        assert installment.failure_count == 2
        assert installment.last_failure_reason.startswith("There was an issue with your card")
        assert (await fetch_plan(test_session, plan.id)).status == "overdue"
        assert len(mock_notifier.events("failure")) == 2

    @pytest.mark.asyncio
    async def test_processor_outage_counts_as_failed_attempt(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        mock_processor.unavailable = True

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        summary = await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert summary.failed == 1
        installment = await fetch_installment(test_session, installment_by_number(plan, 1).id)
        assert installment.status == "failed"
        assert installment.failure_count == 1

    @pytest.mark.asyncio
    async def test_retry_endpoint_charges_immediately(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        """The admin retry ignores the interval and answers in camelCase."""
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, retry_interval_days=30)
        first = installment_by_number(plan, 1)

        mock_processor.decline = True
        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))
        mock_processor.decline = False

        response = await client.post(f"/v1/installments/{first.id}/retry")

        assert response.status_code == 200
        data = response.json()
        assert data["installmentId"] == first.id
        assert data["success"] is True
        assert data["processorRef"].startswith("pi_")
        assert mock_processor.attempted_keys[-1] == f"installment-{first.id}-attempt-1"

    @pytest.mark.asyncio
    async def test_retry_of_scheduled_installment_is_rejected(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)

        response = await client.post(f"/v1/installments/{installment_by_number(plan, 2).id}/retry")

        assert response.status_code == 400
        assert response.json()["error"] == "INSTALLMENT_NOT_PAYABLE"


# =============================================================================
# POST /v1/jobs/process-installments Tests
# =============================================================================

class TestProcessInstallmentsEndpoint:
    @pytest.mark.asyncio
    async def test_job_endpoint_reports_summary(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        await seed_active_plan(test_session)

        response = await client.post("/v1/jobs/process-installments", params={"run_date": "2024-01-15"})

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 1
        assert data["successful"] == 1
        assert data["dueCount"] == 1
        assert data["retryCount"] == 0
        assert data["results"][0]["success"] is True


# =============================================================================
# POST /v1/installments/{id}/mark-paid Tests
# =============================================================================

class TestManualSettlement:
    """Tests for recording installments paid outside the processor."""

    @pytest.mark.asyncio
    async def test_marking_paid_twice_counts_once(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        first = installment_by_number(plan, 1)

        first_response = await client.post(f"/v1/installments/{first.id}/mark-paid")
        second_response = await client.post(f"/v1/installments/{first.id}/mark-paid")

        assert first_response.status_code == 200
        assert second_response.status_code == 200
        assert second_response.json()["status"] == "paid"

        stored = await fetch_plan(test_session, plan.id)
        assert stored.paid_installments == 1
        assert stored.total_paid_cents == 10000

        payments = await fetch_all(test_session, PaymentModel, PaymentModel.rental_id == RENTAL_ID)
        assert len(payments) == 1
        assert payments[0].method == "Cash"
        assert payments[0].amount_cents == 10000

    @pytest.mark.asyncio
    async def test_settling_exhausted_installment_reactivates_plan(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, max_retry_attempts=1)
        first = installment_by_number(plan, 1)
        mock_processor.decline = True

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))
        assert (await fetch_plan(test_session, plan.id)).status == "overdue"

        response = await client.post(f"/v1/installments/{first.id}/mark-paid")

        assert response.status_code == 200
        stored = await fetch_plan(test_session, plan.id)
        assert stored.status == "active"
        assert stored.next_due_date == date(2024, 2, 15)

    @pytest.mark.asyncio
    async def test_paying_every_installment_completes_plan(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)

        for installment in plan.installments:
            response = await client.post(f"/v1/installments/{installment.id}/mark-paid")
            assert response.status_code == 200

        stored = await fetch_plan(test_session, plan.id)
        assert stored.status == "completed"
        assert stored.paid_installments == 3
        assert stored.total_paid_cents == 30000
        assert stored.next_due_date is None

    @pytest.mark.asyncio
    async def test_unknown_installment_returns_404(self, client: AsyncClient):
        response = await client.post("/v1/installments/00000000-0000-4000-8000-000000000000/mark-paid")

        assert response.status_code == 404
        assert response.json()["error"] == "INSTALLMENT_NOT_FOUND"


# =============================================================================
# Reminder Tests
# =============================================================================

class TestReminders:
    @pytest.mark.asyncio
    async def test_reminder_is_sent_once(
        self,
        test_session: AsyncSession,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)

        service = build_reminder_service(test_session, notification_client=mock_notifier)

        first = await service.send_reminders(today=date(2024, 2, 12), days_ahead=3)
        second = await service.send_reminders(today=date(2024, 2, 12), days_ahead=3)

        assert first.due_date == "2024-02-15"
        assert first.sent == 1
        assert second.sent == 0
        assert second.skipped == 1

        reminders = mock_notifier.events("reminder")
        assert len(reminders) == 1
        assert reminders[0]["installment_id"] == installment_by_number(plan, 2).id

    @pytest.mark.asyncio
    async def test_plans_not_active_get_no_reminders(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        await client.post(f"/v1/plans/{plan.id}/cancel")

        response = await client.post(
            "/v1/jobs/send-reminders",
            params={"run_date": "2024-02-12", "days_ahead": 3},
        )

        assert response.status_code == 200
        assert response.json()["candidates"] == 0
        assert mock_notifier.events("reminder") == []
