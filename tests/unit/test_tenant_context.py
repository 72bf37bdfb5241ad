"""
Unit Tests for tenant payment context resolution.

These tests verify:
1. Mode parsing is strict about live
2. Test mode routes through the sandbox account
3. Live mode uses the merchant account only after onboarding
4. Lookup failures fall back to test mode
5. Processor clients are only built when a key exists for the mode
"""

import pytest
from unittest.mock import AsyncMock

from fleet_billing.application.services import (
    TenantPaymentContextResolver,
    build_context,
    parse_mode,
)
from fleet_billing.core.config import Settings
from fleet_billing.domain.entities import PaymentMode, TenantRecord
from fleet_billing.domain.exceptions import ProcessorConfigurationException
from fleet_billing.infrastructure.clients import resolve_processor_client


class TestModeParsing:
    @pytest.mark.parametrize("value", ["live", "LIVE", " Live "])
    def test_live(self, value):
        assert parse_mode(value) == PaymentMode.LIVE

    @pytest.mark.parametrize("value", [None, "", "test", "production", "sandbox"])
    def test_anything_else_is_test(self, value):
        assert parse_mode(value) == PaymentMode.TEST


class TestBuildContext:
    def test_unknown_tenant_is_test_mode(self):
        context = build_context("tenant-x", None, "acct_sandbox")

        assert context.mode == PaymentMode.TEST
        assert context.merchant_account_id == "acct_sandbox"
        assert context.onboarding_complete is False

    def test_test_tenant_uses_sandbox_not_own_account(self):
        record = TenantRecord("tenant-1", "test", "acct_tenant", True)

        context = build_context("tenant-1", record, "acct_sandbox")

        assert context.mode == PaymentMode.TEST
        assert context.merchant_account_id == "acct_sandbox"

    def test_onboarded_live_tenant_uses_own_account(self):
        record = TenantRecord("tenant-1", "live", "acct_tenant", True)

        context = build_context("tenant-1", record, "acct_sandbox")

        assert context.is_live
        assert context.merchant_account_id == "acct_tenant"

    def test_live_tenant_mid_onboarding_uses_platform_account(self):
        record = TenantRecord("tenant-1", "live", "acct_tenant", False)

        context = build_context("tenant-1", record, "acct_sandbox")

        assert context.is_live
        assert context.merchant_account_id is None


class TestResolver:
    @pytest.mark.asyncio
    async def test_resolves_from_repository(self):
        repo = AsyncMock()
        repo.get.return_value = TenantRecord("tenant-1", "live", "acct_tenant", True)

        context = await TenantPaymentContextResolver(repo, sandbox_account_id="").resolve("tenant-1")

        assert context.mode == PaymentMode.LIVE
        assert context.merchant_account_id == "acct_tenant"

    @pytest.mark.asyncio
    async def test_lookup_failure_falls_back_to_test(self):
        repo = AsyncMock()
        repo.get.side_effect = RuntimeError("database unavailable")

        context = await TenantPaymentContextResolver(repo, sandbox_account_id="").resolve("tenant-1")

        assert context.mode == PaymentMode.TEST
        assert context.merchant_account_id is None

    @pytest.mark.asyncio
    async def test_missing_tenant_id_skips_lookup(self):
        repo = AsyncMock()

        context = await TenantPaymentContextResolver(repo, sandbox_account_id="").resolve(None)

        repo.get.assert_not_awaited()
        assert context.mode == PaymentMode.TEST


class TestProcessorClientResolution:
    def test_missing_key_for_mode_is_a_configuration_error(self):
        cfg = Settings(stripe_test_secret_key="sk_test_123", stripe_live_secret_key="")
        context = build_context("tenant-1", TenantRecord("tenant-1", "live", "acct_1", True))

        with pytest.raises(ProcessorConfigurationException):
            resolve_processor_client(context, cfg)

    def test_client_is_built_for_configured_mode(self):
        cfg = Settings(stripe_test_secret_key="sk_test_123")
        context = build_context("tenant-1", None, "acct_sandbox")

        client = resolve_processor_client(context, cfg)

        assert client is not None
