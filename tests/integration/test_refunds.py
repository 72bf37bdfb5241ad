"""
Integration tests for rental rejection and ledger refunds.

These tests verify:
1. POST /v1/rentals/{rental_id}/reject - Refunds captures, releases holds, closes out the rental
2. A tenant without processor credentials still completes the cascade with manual refunds
3. Refunds made before a later failure stay recorded and are not repeated on a rerun
4. POST /v1/refunds - Never refunds more than a category collected
5. GET /v1/rentals/{rental_id}/refundable - Reports what is left to refund
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.application.services import (
    NotificationDispatcher,
    RentalRejectionService,
    TenantPaymentContextResolver,
)
from fleet_billing.core.dependencies import get_processor_factory
from fleet_billing.infrastructure.database.models import (
    InstallmentPlanModel,
    LedgerEntryModel,
    PaymentModel,
    RentalChargeModel,
    RentalModel,
    ScheduledInstallmentModel,
    VehicleModel,
)
from fleet_billing.infrastructure.repositories import (
    PostgresCustomerRepository,
    PostgresLedgerRepository,
    PostgresNotificationRepository,
    PostgresPaymentRepository,
    PostgresPlanRepository,
    PostgresRentalRepository,
    PostgresTenantRepository,
)
from fleet_billing.main import app
from tests.integration.conftest import (
    RENTAL_ID,
    VEHICLE_ID,
    MockNotificationClient,
    MockPaymentProcessor,
    fetch_all,
    fetch_one,
    make_processor_factory,
    seed_active_plan,
    seed_charges,
    seed_paid_charge,
    seed_payment,
    seed_rental,
)


def build_rejection_service(session: AsyncSession, processor_factory, notifier) -> RentalRejectionService:
    return RentalRejectionService(
        rental_repository=PostgresRentalRepository(session),
        payment_repository=PostgresPaymentRepository(session),
        ledger_repository=PostgresLedgerRepository(session),
        plan_repository=PostgresPlanRepository(session),
        context_resolver=TenantPaymentContextResolver(PostgresTenantRepository(session)),
        notifier=NotificationDispatcher(
            notifier,
            PostgresCustomerRepository(session),
            PostgresNotificationRepository(session),
        ),
        processor_factory=processor_factory,
    )


async def ledger_refunds(session: AsyncSession):
    return await fetch_all(
        session,
        LedgerEntryModel,
        LedgerEntryModel.rental_id == RENTAL_ID,
        LedgerEntryModel.type == "refund",
    )


# =============================================================================
# POST /v1/rentals/{rental_id}/reject Tests
# =============================================================================

class TestRejectRental:
    """Tests for the rejection cascade."""

    @pytest.mark.asyncio
    async def test_rejection_returns_everything_and_closes_out_rental(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_charges(test_session)
        captured_id = await seed_payment(test_session, 50000, "captured", "pi_captured")
        hold_id = await seed_payment(test_session, 20000, "requires_capture", "pi_hold")
        plan = await seed_active_plan(test_session)

        response = await client.post(f"/v1/rentals/{RENTAL_ID}/reject", json={"reason": "Failed verification"})

        assert response.status_code == 200
        data = response.json()
        assert data["payments_processed"] == 2
        assert data["total_refunded_cents"] == 70000
        assert data["manual_refunds_required"] == 0
        assert data["ledger_entries_created"] == 2
        assert data["plan_cancelled_id"] == plan.id
        assert data["charges_cancelled"] == 2

        actions = {result["payment_id"]: result["action"] for result in data["results"]}
        assert actions == {captured_id: "refunded", hold_id: "released"}

        assert mock_processor.refunds == [
            {"intent_ref": "pi_captured", "amount_cents": 50000, "idempotency_key": f"reject-{captured_id}"}
        ]
        assert mock_processor.released_intents == ["pi_hold"]

        refunds = await ledger_refunds(test_session)
        assert sum(entry.amount_cents for entry in refunds) == -70000
        assert {entry.category for entry in refunds} == {"Security Deposit"}

        captured = await fetch_one(test_session, PaymentModel, PaymentModel.id == captured_id)
        hold = await fetch_one(test_session, PaymentModel, PaymentModel.id == hold_id)
        assert captured.status == "Refunded"
        assert captured.capture_status == "refunded"
        assert captured.refund_status == "completed"
        assert hold.capture_status == "cancelled"

        rental = await fetch_one(test_session, RentalModel, RentalModel.id == RENTAL_ID)
        assert rental.status == "Cancelled"
        assert rental.approval_status == "rejected"
        assert rental.payment_status == "refunded"
        assert rental.cancellation_reason == "Failed verification"

        vehicle = await fetch_one(test_session, VehicleModel, VehicleModel.id == VEHICLE_ID)
        assert vehicle.status == "Available"

        stored_plan = await fetch_one(test_session, InstallmentPlanModel, InstallmentPlanModel.id == plan.id)
        assert stored_plan.status == "cancelled"
        installments = await fetch_all(
            test_session,
            ScheduledInstallmentModel,
            ScheduledInstallmentModel.plan_id == plan.id,
        )
        assert {inst.status for inst in installments} == {"cancelled"}

        charges = await fetch_all(test_session, RentalChargeModel, RentalChargeModel.rental_id == RENTAL_ID)
        assert {charge.status for charge in charges} == {"Cancelled"}

        notices = mock_notifier.events("refund")
        assert len(notices) == 1
        assert notices[0]["total_refunded_cents"] == 70000

    @pytest.mark.asyncio
    async def test_refund_follows_payment_applications(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        payment_id = await seed_payment(test_session, 32400, "captured", "pi_captured")
        await seed_paid_charge(test_session, "Rental", 30000, payment_id=payment_id)
        await seed_paid_charge(test_session, "Tax", 2400, payment_id=payment_id)

        response = await client.post(f"/v1/rentals/{RENTAL_ID}/reject")

        assert response.status_code == 200
        refunds = await ledger_refunds(test_session)
        assert sorted((entry.category, entry.amount_cents) for entry in refunds) == [
            ("Rental", -30000),
            ("Tax", -2400),
        ]

    @pytest.mark.asyncio
    async def test_unconfigured_tenant_flags_manual_refunds(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        mock_notifier: MockNotificationClient,
    ):
        """Without credentials nothing is returned automatically, but the rental still closes."""
        await seed_rental(test_session)
        captured_id = await seed_payment(test_session, 50000, "captured", "pi_captured")
        hold_id = await seed_payment(test_session, 20000, "requires_capture", "pi_hold")
        await seed_active_plan(test_session)

        app.dependency_overrides[get_processor_factory] = lambda: make_processor_factory(
            mock_processor, unconfigured_tenants={"tenant-1"}
        )

        response = await client.post(f"/v1/rentals/{RENTAL_ID}/reject")

        assert response.status_code == 200
        data = response.json()
        assert data["manual_refunds_required"] == 2
        assert data["total_refunded_cents"] == 0
        assert data["ledger_entries_created"] == 0
        assert data["plan_cancelled_id"] is not None
        assert all(result["error"] for result in data["results"])

        for payment_id in (captured_id, hold_id):
            payment = await fetch_one(test_session, PaymentModel, PaymentModel.id == payment_id)
            assert payment.refund_status == "pending_manual"

        assert mock_processor.refunds == []
        assert mock_processor.released_intents == []
        assert await ledger_refunds(test_session) == []
        assert mock_notifier.events("refund") == []

        rental = await fetch_one(test_session, RentalModel, RentalModel.id == RENTAL_ID)
        assert rental.status == "Cancelled"

    @pytest.mark.asyncio
    async def test_cash_payment_needs_manual_refund(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        await seed_payment(test_session, 15000, None, None)

        response = await client.post(f"/v1/rentals/{RENTAL_ID}/reject")

        assert response.status_code == 200
        data = response.json()
        assert data["manual_refunds_required"] == 1
        assert data["results"][0]["action"] == "pending_manual"
        assert data["results"][0]["amount_cents"] == 15000

    @pytest.mark.asyncio
    async def test_failure_after_refunds_keeps_them_and_rerun_does_not_refund_again(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        mock_notifier: MockNotificationClient,
        processor_factory,
        monkeypatch,
    ):
        await seed_rental(test_session)
        await seed_charges(test_session)
        captured_id = await seed_payment(test_session, 50000, "captured", "pi_captured")
        hold_id = await seed_payment(test_session, 20000, "requires_capture", "pi_hold")
        service = build_rejection_service(test_session, processor_factory, mock_notifier)

        async def vehicle_update_fails(self, vehicle_id, status):
            raise RuntimeError("fleet table locked")

        monkeypatch.setattr(PostgresRentalRepository, "set_vehicle_status", vehicle_update_fails)
        with pytest.raises(RuntimeError):
            await service.reject_rental(RENTAL_ID, "Failed verification")
        await test_session.rollback()

        captured = await fetch_one(test_session, PaymentModel, PaymentModel.id == captured_id)
        hold = await fetch_one(test_session, PaymentModel, PaymentModel.id == hold_id)
        assert captured.status == "Refunded"
        assert hold.capture_status == "cancelled"
        assert sum(entry.amount_cents for entry in await ledger_refunds(test_session)) == -70000

        rental = await fetch_one(test_session, RentalModel, RentalModel.id == RENTAL_ID)
        assert rental.status != "Cancelled"

        monkeypatch.undo()
        summary = await service.reject_rental(RENTAL_ID, "Failed verification")

        assert summary.payments_processed == 0
        assert len(mock_processor.refunds) == 1
        assert mock_processor.released_intents == ["pi_hold"]
        assert sum(entry.amount_cents for entry in await ledger_refunds(test_session)) == -70000

        rental = await fetch_one(test_session, RentalModel, RentalModel.id == RENTAL_ID)
        assert rental.status == "Cancelled"

    @pytest.mark.asyncio
    async def test_unknown_rental_returns_404(self, client: AsyncClient):
        response = await client.post("/v1/rentals/missing/reject")

        assert response.status_code == 404
        assert response.json()["error"] == "RENTAL_NOT_FOUND"


# =============================================================================
# POST /v1/refunds Tests
# =============================================================================

class TestLedgerRefund:
    """Tests for refunding a single ledger category."""

    @pytest.mark.asyncio
    async def test_refund_over_available_is_rejected_before_processor(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        payment_id = await seed_payment(test_session, 50000, "captured", "pi_captured")
        await seed_paid_charge(test_session, "Security Deposit", 50000, payment_id=payment_id)

        response = await client.post(
            "/v1/refunds",
            json={"rental_id": RENTAL_ID, "category": "Security Deposit", "amount_cents": 60000},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "REFUND_EXCEEDS_AVAILABLE"
        assert mock_processor.refunds == []
        assert await ledger_refunds(test_session) == []

    @pytest.mark.asyncio
    async def test_partial_refund_reduces_available_balance(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        payment_id = await seed_payment(test_session, 50000, "captured", "pi_captured")
        await seed_paid_charge(test_session, "Security Deposit", 50000, payment_id=payment_id)

        response = await client.post(
            "/v1/refunds",
            json={
                "rental_id": RENTAL_ID,
                "category": "Security Deposit",
                "amount_cents": 20000,
                "reason": "Minor damage deducted",
                "processed_by": "ops@example.com",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "refunded"
        assert data["payment_id"] == payment_id
        assert data["available_after_cents"] == 30000
        assert mock_processor.refunds[0]["idempotency_key"] == f"refund-{payment_id}-0"

        payment = await fetch_one(test_session, PaymentModel, PaymentModel.id == payment_id)
        assert payment.status == "PartialRefund"
        assert payment.capture_status == "partial_refund"
        assert payment.refund_amount_cents == 20000

        balance = await client.get(
            f"/v1/rentals/{RENTAL_ID}/refundable",
            params={"category": "Security Deposit"},
        )
        assert balance.status_code == 200
        assert balance.json()["available_for_refund_cents"] == 30000
        assert balance.json()["total_refunded_cents"] == 20000

    @pytest.mark.asyncio
    async def test_hold_cannot_be_refunded(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
    ):
        await seed_rental(test_session)
        payment_id = await seed_payment(test_session, 50000, "requires_capture", "pi_hold")
        await seed_paid_charge(test_session, "Security Deposit", 50000, payment_id=payment_id)
        mock_processor.add_intent("pi_hold", "requires_capture", 50000)

        response = await client.post(
            "/v1/refunds",
            json={"rental_id": RENTAL_ID, "category": "Security Deposit", "amount_cents": 1000},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "HOLD_NOT_REFUNDABLE"
        assert mock_processor.refunds == []

    @pytest.mark.asyncio
    async def test_category_without_payments_has_nothing_to_refund(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)

        response = await client.post(
            "/v1/refunds",
            json={"rental_id": RENTAL_ID, "category": "Tax", "amount_cents": 100},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "NO_REFUNDABLE_BALANCE"

    @pytest.mark.asyncio
    async def test_non_positive_amount_is_invalid(self, client: AsyncClient):
        response = await client.post(
            "/v1/refunds",
            json={"rental_id": RENTAL_ID, "category": "Tax", "amount_cents": 0},
        )

        assert response.status_code == 422
