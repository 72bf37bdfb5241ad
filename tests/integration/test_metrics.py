"""
Integration tests for metrics tracking.

These tests verify:
1. Metrics endpoint returns valid Prometheus format
2. Installment charges are counted by trigger and outcome
3. Refund cascade outcomes and returned cents are tracked
4. HTTP requests are counted per endpoint
"""

from datetime import date, datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.core.dependencies import build_installment_processor
from fleet_billing.core.metrics import REGISTRY
from tests.integration.conftest import (
    RENTAL_ID,
    MockNotificationClient,
    MockPaymentProcessor,
    seed_active_plan,
    seed_payment,
    seed_rental,
)


def sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


# =============================================================================
# Metrics Endpoint Tests
# =============================================================================

class TestMetricsEndpoint:
    """Tests for GET /metrics endpoint."""

    @pytest.mark.asyncio
    async def test_metrics_endpoint_returns_prometheus_format(
        self,
        client: AsyncClient,
    ):
        response = await client.get("/metrics")

        assert response.status_code == 200

        content_type = response.headers.get("content-type", "")
        assert "text/plain" in content_type or "text/openmetrics" in content_type
        assert "# HELP" in response.text
        assert "fleet_billing_installment_run_latency_seconds" in response.text

    @pytest.mark.asyncio
    async def test_http_requests_are_counted(
        self,
        client: AsyncClient,
    ):
        before = sample(
            "fleet_billing_http_requests_total",
            {"method": "GET", "endpoint": "/v1/plans", "status": "200"},
        )

        await client.get("/v1/plans", params={"customer_id": "nobody"})

        after = sample(
            "fleet_billing_http_requests_total",
            {"method": "GET", "endpoint": "/v1/plans", "status": "200"},
        )
        assert after == before + 1


# =============================================================================
# Installment Metrics Tests
# =============================================================================

class TestInstallmentMetrics:
    """Tests for installment charge counters."""

    @pytest.mark.asyncio
    async def test_successful_charge_is_counted_with_amount(
        self,
        test_session: AsyncSession,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_active_plan(test_session)

        labels = {"trigger": "scheduled", "outcome": "success"}
        charges_before = sample("fleet_billing_installment_charges_total", labels)
        cents_before = sample("fleet_billing_installment_charged_cents_total")

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert sample("fleet_billing_installment_charges_total", labels) == charges_before + 1
        assert sample("fleet_billing_installment_charged_cents_total") == cents_before + 10000

    @pytest.mark.asyncio
    async def test_declined_charge_is_counted_as_failure(
        self,
        test_session: AsyncSession,
        mock_processor: MockPaymentProcessor,
        processor_factory,
        mock_notifier: MockNotificationClient,
    ):
        await seed_rental(test_session)
        await seed_active_plan(test_session)
        mock_processor.decline = True

        labels = {"trigger": "scheduled", "outcome": "failure"}
        before = sample("fleet_billing_installment_charges_total", labels)

        processor = build_installment_processor(
            test_session,
            processor_factory=processor_factory,
            notification_client=mock_notifier,
        )
        await processor.run(today=date(2024, 1, 15), now=datetime(2024, 1, 15, 9, 0))

        assert sample("fleet_billing_installment_charges_total", labels) == before + 1


# =============================================================================
# Refund Metrics Tests
# =============================================================================

class TestRefundMetrics:
    @pytest.mark.asyncio
    async def test_rejection_outcomes_are_counted(
        self,
        client: AsyncClient,
        test_session: AsyncSession,
    ):
        await seed_rental(test_session)
        await seed_payment(test_session, 50000, "captured", "pi_captured")
        await seed_payment(test_session, 20000, "requires_capture", "pi_hold")

        refunded_before = sample("fleet_billing_refund_outcomes_total", {"action": "refunded"})
        released_before = sample("fleet_billing_refund_outcomes_total", {"action": "released"})
        cents_before = sample("fleet_billing_refunded_cents_total")

        response = await client.post(f"/v1/rentals/{RENTAL_ID}/reject")
        assert response.status_code == 200

        assert sample("fleet_billing_refund_outcomes_total", {"action": "refunded"}) == refunded_before + 1
        assert sample("fleet_billing_refund_outcomes_total", {"action": "released"}) == released_before + 1
        assert sample("fleet_billing_refunded_cents_total") == cents_before + 70000
