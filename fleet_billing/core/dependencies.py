"""Dependency injection for FastAPI."""

from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing.core.config import settings
from fleet_billing.infrastructure.database import get_db_session
from fleet_billing.infrastructure.repositories import (
    PostgresCustomerRepository,
    PostgresLedgerRepository,
    PostgresNotificationRepository,
    PostgresPaymentRepository,
    PostgresPlanRepository,
    PostgresRentalRepository,
    PostgresTenantRepository,
)
from fleet_billing.infrastructure.clients import (
    HttpNotificationClient,
    resolve_processor_client,
)
from fleet_billing.domain.interfaces import NotificationClient
from fleet_billing.application.services import (
    CheckoutService,
    DueInstallmentProcessor,
    EarlyPayoffService,
    InstallmentPlanBuilder,
    InstallmentReminderService,
    InstallmentSettlement,
    LedgerReconciliationService,
    NotificationDispatcher,
    PaymentMethodVaultService,
    PlanService,
    ProcessorFactory,
    RentalRejectionService,
    TenantPaymentContextResolver,
)


# Repository dependencies
async def get_plan_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresPlanRepository:
    """Get a PlanRepository instance."""
    return PostgresPlanRepository(session)


async def get_payment_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresPaymentRepository:
    """Get a PaymentRepository instance."""
    return PostgresPaymentRepository(session)


async def get_ledger_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresLedgerRepository:
    return PostgresLedgerRepository(session)


async def get_rental_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresRentalRepository:
    return PostgresRentalRepository(session)


async def get_customer_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresCustomerRepository:
    return PostgresCustomerRepository(session)


async def get_tenant_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresTenantRepository:
    return PostgresTenantRepository(session)


async def get_notification_repository(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PostgresNotificationRepository:
    return PostgresNotificationRepository(session)


# External client dependencies
def get_processor_factory() -> ProcessorFactory:
    """Get the factory that builds a processor client per tenant context."""
    return resolve_processor_client


def get_notification_client() -> Optional[NotificationClient]:
    """Get a NotificationClient, or None when no notification service is configured."""
    if not settings.notification_webhook_url:
        return None
    return HttpNotificationClient()


# Shared building blocks
async def get_context_resolver(
    tenant_repo: Annotated[PostgresTenantRepository, Depends(get_tenant_repository)],
) -> TenantPaymentContextResolver:
    return TenantPaymentContextResolver(tenant_repo)


async def get_settlement(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
) -> InstallmentSettlement:
    return InstallmentSettlement(plan_repo, payment_repo)


async def get_notifier(
    notification_client: Annotated[Optional[NotificationClient], Depends(get_notification_client)],
    customer_repo: Annotated[PostgresCustomerRepository, Depends(get_customer_repository)],
    notification_repo: Annotated[PostgresNotificationRepository, Depends(get_notification_repository)],
) -> NotificationDispatcher:
    return NotificationDispatcher(notification_client, customer_repo, notification_repo)


# Service dependencies
async def get_plan_builder(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
) -> InstallmentPlanBuilder:
    return InstallmentPlanBuilder(plan_repo)


async def get_vault_service(
    customer_repo: Annotated[PostgresCustomerRepository, Depends(get_customer_repository)],
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> PaymentMethodVaultService:
    """Get a PaymentMethodVaultService instance."""
    return PaymentMethodVaultService(
        customer_repository=customer_repo,
        plan_repository=plan_repo,
        context_resolver=resolver,
        processor_factory=processor_factory,
    )


async def get_checkout_service(
    plan_builder: Annotated[InstallmentPlanBuilder, Depends(get_plan_builder)],
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    customer_repo: Annotated[PostgresCustomerRepository, Depends(get_customer_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    vault: Annotated[PaymentMethodVaultService, Depends(get_vault_service)],
    settlement: Annotated[InstallmentSettlement, Depends(get_settlement)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> CheckoutService:
    """Get a CheckoutService instance with all dependencies."""
    return CheckoutService(
        plan_builder=plan_builder,
        plan_repository=plan_repo,
        payment_repository=payment_repo,
        customer_repository=customer_repo,
        context_resolver=resolver,
        vault=vault,
        settlement=settlement,
        processor_factory=processor_factory,
    )


async def get_installment_processor(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    settlement: Annotated[InstallmentSettlement, Depends(get_settlement)],
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> DueInstallmentProcessor:
    """Get a DueInstallmentProcessor instance with all dependencies."""
    return DueInstallmentProcessor(
        plan_repository=plan_repo,
        payment_repository=payment_repo,
        context_resolver=resolver,
        settlement=settlement,
        notifier=notifier,
        processor_factory=processor_factory,
    )


async def get_early_payoff_service(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    settlement: Annotated[InstallmentSettlement, Depends(get_settlement)],
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> EarlyPayoffService:
    return EarlyPayoffService(
        plan_repository=plan_repo,
        payment_repository=payment_repo,
        context_resolver=resolver,
        settlement=settlement,
        notifier=notifier,
        processor_factory=processor_factory,
    )


async def get_rejection_service(
    rental_repo: Annotated[PostgresRentalRepository, Depends(get_rental_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    ledger_repo: Annotated[PostgresLedgerRepository, Depends(get_ledger_repository)],
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> RentalRejectionService:
    return RentalRejectionService(
        rental_repository=rental_repo,
        payment_repository=payment_repo,
        ledger_repository=ledger_repo,
        plan_repository=plan_repo,
        context_resolver=resolver,
        notifier=notifier,
        processor_factory=processor_factory,
    )


async def get_ledger_service(
    ledger_repo: Annotated[PostgresLedgerRepository, Depends(get_ledger_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    rental_repo: Annotated[PostgresRentalRepository, Depends(get_rental_repository)],
    resolver: Annotated[TenantPaymentContextResolver, Depends(get_context_resolver)],
    processor_factory: Annotated[ProcessorFactory, Depends(get_processor_factory)],
) -> LedgerReconciliationService:
    return LedgerReconciliationService(
        ledger_repository=ledger_repo,
        payment_repository=payment_repo,
        rental_repository=rental_repo,
        context_resolver=resolver,
        processor_factory=processor_factory,
    )


async def get_plan_service(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    payment_repo: Annotated[PostgresPaymentRepository, Depends(get_payment_repository)],
    settlement: Annotated[InstallmentSettlement, Depends(get_settlement)],
) -> PlanService:
    """Get a PlanService instance."""
    return PlanService(plan_repository=plan_repo, payment_repository=payment_repo, settlement=settlement)


async def get_reminder_service(
    plan_repo: Annotated[PostgresPlanRepository, Depends(get_plan_repository)],
    notification_repo: Annotated[PostgresNotificationRepository, Depends(get_notification_repository)],
    notifier: Annotated[NotificationDispatcher, Depends(get_notifier)],
) -> InstallmentReminderService:
    return InstallmentReminderService(
        plan_repository=plan_repo,
        notification_repository=notification_repo,
        notifier=notifier,
    )


# Builders for jobs running outside a request
def build_installment_processor(
    session: AsyncSession,
    processor_factory: ProcessorFactory = resolve_processor_client,
    notification_client: Optional[NotificationClient] = None,
) -> DueInstallmentProcessor:
    plan_repo = PostgresPlanRepository(session)
    payment_repo = PostgresPaymentRepository(session)
    notifier = NotificationDispatcher(
        notification_client or get_notification_client(),
        PostgresCustomerRepository(session),
        PostgresNotificationRepository(session),
    )
    return DueInstallmentProcessor(
        plan_repository=plan_repo,
        payment_repository=payment_repo,
        context_resolver=TenantPaymentContextResolver(PostgresTenantRepository(session)),
        settlement=InstallmentSettlement(plan_repo, payment_repo),
        notifier=notifier,
        processor_factory=processor_factory,
    )


def build_reminder_service(
    session: AsyncSession,
    notification_client: Optional[NotificationClient] = None,
) -> InstallmentReminderService:
    notification_repo = PostgresNotificationRepository(session)
    notifier = NotificationDispatcher(
        notification_client or get_notification_client(),
        PostgresCustomerRepository(session),
        notification_repo,
    )
    return InstallmentReminderService(
        plan_repository=PostgresPlanRepository(session),
        notification_repository=notification_repo,
        notifier=notifier,
    )
