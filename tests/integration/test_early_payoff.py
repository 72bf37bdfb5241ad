"""
Integration tests for customer-initiated early payments.

These tests verify:
1. POST /v1/plans/{plan_id}/pay-remaining - One charge settles every outstanding installment
2. A declined payoff puts every installment back where it was
3. POST /v1/installments/{id}/pay-early - Charges one installment ahead of schedule
4. Customers cannot pay for plans that are not theirs
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.infrastructure.database.models import (
    InstallmentPlanModel,
    PaymentModel,
    ScheduledInstallmentModel,
)
from tests.integration.conftest import (
    CUSTOMER_ID,
    RENTAL_ID,
    MockPaymentProcessor,
    fetch_all,
    fetch_one,
    seed_active_plan,
    seed_rental,
)


# =============================================================================
# POST /v1/plans/{plan_id}/pay-remaining Tests
# =============================================================================

class TestPayRemaining:
    """Tests for paying off a whole plan."""

    @pytest.mark.asyncio
    async def test_payoff_charges_once_and_completes_plan(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, amounts=[10000, 10000, 10500])

        response = await client.post(
            f"/v1/plans/{plan.id}/pay-remaining",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["amount_cents"] == 30500
        assert data["installments_paid"] == 3
        assert data["plan_status"] == "completed"

        assert len(mock_processor.charges) == 1
        assert mock_processor.charges[0]["amount_cents"] == 30500
        assert mock_processor.charges[0]["idempotency_key"].startswith(f"payoff-{plan.id}-")

        payments = await fetch_all(test_session, PaymentModel, PaymentModel.rental_id == RENTAL_ID)
        assert len(payments) == 1
        assert payments[0].id == data["payment_id"]

        installments = await fetch_all(
            test_session,
            ScheduledInstallmentModel,
            ScheduledInstallmentModel.plan_id == plan.id,
        )
        assert {inst.status for inst in installments} == {"paid"}
        assert {inst.payment_id for inst in installments} == {data["payment_id"]}

        stored = await fetch_one(test_session, InstallmentPlanModel, InstallmentPlanModel.id == plan.id)
        assert stored.total_paid_cents == 30500
        assert stored.paid_installments == 3

    @pytest.mark.asyncio
    async def test_payoff_skips_installments_already_paid(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        await client.post(f"/v1/installments/{plan.installments[0].id}/mark-paid")

        response = await client.post(
            f"/v1/plans/{plan.id}/pay-remaining",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 200
        assert response.json()["amount_cents"] == 20000
        assert response.json()["installments_paid"] == 2

    @pytest.mark.asyncio
    async def test_declined_payoff_restores_installments(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        mock_processor.decline = True

        response = await client.post(
            f"/v1/plans/{plan.id}/pay-remaining",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 402
        assert response.json()["error"] == "CARD_DECLINED"

        installments = await fetch_all(
            test_session,
            ScheduledInstallmentModel,
            ScheduledInstallmentModel.plan_id == plan.id,
        )
        assert {inst.status for inst in installments} == {"scheduled"}
        assert all(inst.last_failure_reason for inst in installments)

        payments = await fetch_all(test_session, PaymentModel, PaymentModel.rental_id == RENTAL_ID)
        assert payments == []

        stored = await fetch_one(test_session, InstallmentPlanModel, InstallmentPlanModel.id == plan.id)
        assert stored.status == "active"
        assert stored.paid_installments == 0

    @pytest.mark.asyncio
    async def test_other_customers_plan_is_not_found(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)

        response = await client.post(
            f"/v1/plans/{plan.id}/pay-remaining",
            json={"customer_id": "someone-else"},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "PLAN_NOT_FOUND"
        assert mock_processor.charges == []

    @pytest.mark.asyncio
    async def test_plan_without_card_cannot_be_paid_off(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session, with_card=False)

        response = await client.post(
            f"/v1/plans/{plan.id}/pay-remaining",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "PAYMENT_METHOD_MISSING"


# =============================================================================
# POST /v1/installments/{id}/pay-early Tests
# =============================================================================

class TestPayEarly:
    """Tests for paying a single installment ahead of schedule."""

    @pytest.mark.asyncio
    async def test_pay_early_then_again_is_refused(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        third = plan.installments[2]

        first = await client.post(
            f"/v1/installments/{third.id}/pay-early",
            json={"customer_id": CUSTOMER_ID},
        )
        second = await client.post(
            f"/v1/installments/{third.id}/pay-early",
            json={"customer_id": CUSTOMER_ID},
        )

        assert first.status_code == 200
        assert first.json()["amount_cents"] == 10000
        assert first.json()["installment_id"] == third.id

        assert second.status_code == 400
        assert second.json()["error"] == "INSTALLMENT_NOT_PAYABLE"
        assert len(mock_processor.charges) == 1
        assert mock_processor.charges[0]["idempotency_key"].startswith(f"early-{third.id}-")

        stored = await fetch_one(test_session, InstallmentPlanModel, InstallmentPlanModel.id == plan.id)
        assert stored.paid_installments == 1
        assert stored.status == "active"

    @pytest.mark.asyncio
    async def test_declined_early_payment_keeps_installment_scheduled(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        mock_processor.decline = True

        response = await client.post(
            f"/v1/installments/{plan.installments[1].id}/pay-early",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 402
        installment = await fetch_one(
            test_session,
            ScheduledInstallmentModel,
            ScheduledInstallmentModel.id == plan.installments[1].id,
        )
        assert installment.status == "scheduled"
        assert installment.failure_count == 0

    @pytest.mark.asyncio
    async def test_other_customers_installment_is_not_found(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)

        response = await client.post(
            f"/v1/installments/{plan.installments[0].id}/pay-early",
            json={"customer_id": "someone-else"},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "INSTALLMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_installment_of_cancelled_plan_cannot_be_paid(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        plan = await seed_active_plan(test_session)
        await client.post(f"/v1/plans/{plan.id}/cancel")

        response = await client.post(
            f"/v1/installments/{plan.installments[0].id}/pay-early",
            json={"customer_id": CUSTOMER_ID},
        )

        assert response.status_code == 400
