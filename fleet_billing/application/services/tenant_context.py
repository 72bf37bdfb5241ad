"""Tenant payment context resolution."""

from typing import Callable, Optional

import structlog

from fleet_billing.core.config import settings
from fleet_billing.domain.entities import PaymentMode, TenantPaymentContext, TenantRecord
from fleet_billing.domain.interfaces import PaymentProcessorClient, TenantRepository

logger = structlog.get_logger(__name__)

ProcessorFactory = Callable[[TenantPaymentContext], PaymentProcessorClient]


def parse_mode(value: Optional[str]) -> PaymentMode:
    """Read a stored mode flag; anything but ``live`` means test."""
    if value and value.strip().lower() == PaymentMode.LIVE.value:
        return PaymentMode.LIVE
    return PaymentMode.TEST


def build_context(
    tenant_id: Optional[str],
    record: Optional[TenantRecord],
    sandbox_account_id: Optional[str] = None,
) -> TenantPaymentContext:
    """
    Derive the payment context from a tenant record.

    Test mode routes through the platform sandbox account when one is
    configured. Live mode uses the tenant's own merchant account, but only
    once onboarding is complete; otherwise charges go to the platform
    account.
    """
    if record is None:
        return TenantPaymentContext(
            tenant_id=tenant_id,
            mode=PaymentMode.TEST,
            merchant_account_id=sandbox_account_id or None,
            onboarding_complete=False,
        )

    mode = parse_mode(record.processor_mode)
    if mode == PaymentMode.TEST:
        merchant_account_id = sandbox_account_id or None
    elif record.onboarding_complete and record.merchant_account_id:
        merchant_account_id = record.merchant_account_id
    else:
        merchant_account_id = None

    return TenantPaymentContext(
        tenant_id=tenant_id,
        mode=mode,
        merchant_account_id=merchant_account_id,
        onboarding_complete=record.onboarding_complete,
    )


class TenantPaymentContextResolver:
    """
    Resolves which processor mode and merchant account serve a tenant.

    Never fails: an unknown or unreadable tenant resolves to test mode.
    """

    def __init__(
        self,
        tenant_repository: TenantRepository,
        sandbox_account_id: Optional[str] = None,
    ):
        self._tenant_repo = tenant_repository
        self._sandbox_account_id = (
            settings.stripe_sandbox_account_id
            if sandbox_account_id is None
            else sandbox_account_id
        )

    async def resolve(self, tenant_id: Optional[str]) -> TenantPaymentContext:
        record = None

        if tenant_id:
            try:
                record = await self._tenant_repo.get(tenant_id)
            except Exception as exc:
                logger.warning(
                    "tenant_context_lookup_failed",
                    tenant_id=tenant_id,
                    error=str(exc),
                    fallback_mode=PaymentMode.TEST.value,
                )

        context = build_context(tenant_id, record, self._sandbox_account_id)

        logger.debug("tenant_context_resolved", **context.to_dict())

        return context
