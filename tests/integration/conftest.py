"""
Fixtures for integration tests.

Provides:
- Test client for FastAPI app
- Mock payment processor that records charges, refunds and hold releases
- Mock notification client
- In-memory database for testing
- Seed helpers for tenants, customers, rentals, ledgers and plans
"""

from datetime import date
from itertools import count
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Set

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from fleet_billing.main import app
from fleet_billing.core.dependencies import (
    get_notification_client,
    get_processor_factory,
)
from fleet_billing.application.dto import PlanRequest
from fleet_billing.application.services import InstallmentPlanBuilder
from fleet_billing.domain.entities import (
    FAILED_INTENT_STATUSES,
    CardDetails,
    ChargeResult,
    CheckoutSession,
    CheckoutSessionRequest,
    InstallmentPlan,
    PaymentIntentInfo,
    PlanStatus,
    PlanType,
    RefundResult,
    SetupIntentInfo,
    TenantPaymentContext,
)
from fleet_billing.domain.exceptions import (
    CardDeclinedException,
    PaymentNotCompletedException,
    ProcessorConfigurationException,
    ProcessorUnavailableException,
)
from fleet_billing.domain.interfaces import NotificationClient, PaymentProcessorClient
from fleet_billing.infrastructure.database import Base, get_db_session
from fleet_billing.infrastructure.database.models import (
    CustomerModel,
    LedgerEntryModel,
    PaymentApplicationModel,
    PaymentModel,
    RentalChargeModel,
    RentalModel,
    TenantModel,
    VehicleModel,
)
from fleet_billing.infrastructure.repositories import PostgresPlanRepository


TENANT_ID = "tenant-1"
CUSTOMER_ID = "customer-1"
RENTAL_ID = "rental-1"
VEHICLE_ID = "vehicle-1"
CUSTOMER_REF = "cus_test_1"
PAYMENT_METHOD_REF = "pm_card_visa"


# =============================================================================
# Mock Clients
# =============================================================================

class MockPaymentProcessor(PaymentProcessorClient):
    """
    In-memory payment processor.

    Charges are keyed by idempotency key like the real processor: a repeated
    key returns the first outcome without charging again.
    """

    def __init__(self):
        self.decline = False
        self.unavailable = False
        self.charge_status = "succeeded"
        self.retrieved_intents: List[str] = []
        self.attempted_keys: List[str] = []
        self.charges: List[dict] = []
        self.refunds: List[dict] = []
        self.released_intents: List[str] = []
        self.customers_created: List[dict] = []
        self.sessions: Dict[str, CheckoutSession] = {}
        self.intents: Dict[str, PaymentIntentInfo] = {}
        self.cards: Dict[str, CardDetails] = {}
        self.default_methods: Dict[str, str] = {}
        self._by_key: Dict[str, ChargeResult] = {}
        self._ids = count(1)

    def _next(self, prefix: str) -> str:
        return f"{prefix}_mock_{next(self._ids)}"

    def add_card(self, payment_method_ref: str, customer_ref: Optional[str], last4: str = "4242") -> None:
        self.cards[payment_method_ref] = CardDetails(
            payment_method_ref=payment_method_ref,
            customer_ref=customer_ref,
            brand="visa",
            last4=last4,
            exp_month=12,
            exp_year=2030,
        )

    def add_intent(self, intent_ref: str, status: str, amount_cents: int) -> None:
        self.intents[intent_ref] = PaymentIntentInfo(id=intent_ref, status=status, amount_cents=amount_cents)

    async def create_customer(self, email, name, phone=None, metadata=None) -> str:
        customer_ref = self._next("cus")
        self.customers_created.append({"id": customer_ref, "email": email, "metadata": metadata})
        return customer_ref

    async def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:
        session = CheckoutSession(
            id=self._next("cs"),
            url="https://checkout.example.com/pay",
            status="open",
            customer_ref=request.customer_ref,
        )
        self.sessions[session.id] = session
        return session

    async def retrieve_checkout_session(self, session_ref: str) -> CheckoutSession:
        return self.sessions[session_ref]

    async def charge_off_session(
        self,
        customer_ref,
        payment_method_ref,
        amount_cents,
        description,
        idempotency_key,
        metadata=None,
    ) -> ChargeResult:
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]

        self.attempted_keys.append(idempotency_key)
        if self.unavailable:
            raise ProcessorUnavailableException(detail="connection reset")
        if self.decline:
            raise CardDeclinedException(detail="Your card was declined.", processor_code="card_declined")

        result = ChargeResult(
            intent_ref=self._next("pi"),
            status=self.charge_status,
            amount_cents=amount_cents,
            charge_ref=self._next("ch"),
        )
        if result.status in FAILED_INTENT_STATUSES:
            raise PaymentNotCompletedException(result.status, intent_ref=result.intent_ref)
        if result.is_pending:
            self.add_intent(result.intent_ref, result.status, amount_cents)
        self._by_key[idempotency_key] = result
        self.charges.append(
            {
                "customer_ref": customer_ref,
                "payment_method_ref": payment_method_ref,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
                "metadata": metadata or {},
            }
        )
        return result

    async def retrieve_payment_intent(self, intent_ref: str) -> PaymentIntentInfo:
        self.retrieved_intents.append(intent_ref)
        return self.intents.get(intent_ref) or PaymentIntentInfo(id=intent_ref, status="succeeded")

    async def cancel_payment_intent(self, intent_ref: str) -> None:
        self.released_intents.append(intent_ref)

    async def create_refund(self, intent_ref, amount_cents, idempotency_key=None, metadata=None) -> RefundResult:
        refund = RefundResult(id=self._next("re"), status="succeeded", amount_cents=amount_cents)
        self.refunds.append(
            {
                "intent_ref": intent_ref,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            }
        )
        return refund

    async def create_setup_intent(self, customer_ref, metadata=None) -> SetupIntentInfo:
        intent_ref = self._next("seti")
        return SetupIntentInfo(id=intent_ref, client_secret=f"{intent_ref}_secret", status="requires_payment_method")

    async def retrieve_payment_method(self, payment_method_ref: str) -> CardDetails:
        return self.cards[payment_method_ref]

    async def set_default_payment_method(self, customer_ref: str, payment_method_ref: str) -> None:
        self.default_methods[customer_ref] = payment_method_ref

    async def get_default_payment_method(self, customer_ref: str) -> Optional[str]:
        return self.default_methods.get(customer_ref)


class MockNotificationClient(NotificationClient):
    """Mock notification client that tracks every notice sent."""

    def __init__(self, fail_mode: bool = False):
        self.fail_mode = fail_mode
        self.sent: List[dict] = []

    async def _record(self, event: str, **data) -> bool:
        if self.fail_mode:
            return False
        self.sent.append({"event": event, **data})
        return True

    async def send_installment_receipt(self, installment, customer, payment_id) -> bool:
        return await self._record("receipt", installment_id=installment.id, payment_id=payment_id)

    async def send_installment_failed(self, installment, customer, reason) -> bool:
        return await self._record("failure", installment_id=installment.id, reason=reason)

    async def send_installment_reminder(self, installment, customer) -> bool:
        return await self._record("reminder", installment_id=installment.id)

    async def send_refund_processed(self, rental_id, customer_id, total_refunded_cents, reason) -> bool:
        return await self._record("refund", rental_id=rental_id, total_refunded_cents=total_refunded_cents)

    def events(self, event: str) -> List[dict]:
        return [item for item in self.sent if item["event"] == event]


def make_processor_factory(processor: MockPaymentProcessor, unconfigured_tenants: Set[str] = frozenset()):
    """Factory that fails like a missing secret key for the given tenants."""

    def factory(context: TenantPaymentContext) -> PaymentProcessorClient:
        if context.tenant_id in unconfigured_tenants:
            raise ProcessorConfigurationException(
                f"No {context.mode.value} secret key is configured for the payment processor"
            )
        return processor

    return factory


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


# =============================================================================
# Mock Client Fixtures
# =============================================================================

@pytest.fixture
def mock_processor() -> MockPaymentProcessor:
    """Create a mock payment processor with the seeded customer's card on file."""
    processor = MockPaymentProcessor()
    processor.add_card(PAYMENT_METHOD_REF, CUSTOMER_REF)
    return processor


@pytest.fixture
def mock_notifier() -> MockNotificationClient:
    return MockNotificationClient()


@pytest.fixture
def processor_factory(mock_processor: MockPaymentProcessor):
    return make_processor_factory(mock_processor)


# =============================================================================
# App Client Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def client(
    test_session: AsyncSession,
    processor_factory,
    mock_notifier: MockNotificationClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test client with mocked dependencies.

    This client:
    - Uses an in-memory SQLite database
    - Charges through the mock payment processor
    - Sends notices through the mock notification client
    """
    async def override_get_db_session():
        yield test_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_processor_factory] = lambda: processor_factory
    app.dependency_overrides[get_notification_client] = lambda: mock_notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Seed Helpers
# =============================================================================

async def seed_rental(
    session: AsyncSession,
    rental_id: str = RENTAL_ID,
    tenant_id: str = TENANT_ID,
    customer_id: str = CUSTOMER_ID,
    vehicle_id: str = VEHICLE_ID,
    processor_customer_ref: Optional[str] = CUSTOMER_REF,
    processor_mode: str = "test",
) -> None:
    """Seed a tenant, customer, reserved vehicle and pending rental."""
    if await session.get(TenantModel, tenant_id) is None:
        session.add(TenantModel(id=tenant_id, processor_mode=processor_mode, onboarding_complete=False))
    if await session.get(CustomerModel, customer_id) is None:
        session.add(
            CustomerModel(
                id=customer_id,
                tenant_id=tenant_id,
                email=f"{customer_id}@example.com",
                name="Test Renter",
                processor_customer_ref=processor_customer_ref,
            )
        )
    session.add(VehicleModel(id=vehicle_id, tenant_id=tenant_id, status="Reserved"))
    session.add(
        RentalModel(
            id=rental_id,
            tenant_id=tenant_id,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            status="Pending",
            approval_status="pending",
        )
    )
    await session.commit()


async def seed_charges(session: AsyncSession, rental_id: str = RENTAL_ID, amounts: Sequence[int] = (30000, 2400)) -> None:
    for amount in amounts:
        session.add(RentalChargeModel(rental_id=rental_id, description="Rental charge", amount_cents=amount))
    await session.commit()


async def seed_payment(
    session: AsyncSession,
    amount_cents: int,
    capture_status: Optional[str],
    intent_ref: Optional[str],
    rental_id: str = RENTAL_ID,
    target_categories: Sequence[str] = ("Security Deposit",),
    status: str = "Applied",
) -> str:
    """Seed a card payment and return its id."""
    payment = PaymentModel(
        rental_id=rental_id,
        customer_id=CUSTOMER_ID,
        tenant_id=TENANT_ID,
        amount_cents=amount_cents,
        payment_type="InitialFee",
        status=status,
        capture_status=capture_status,
        processor_intent_ref=intent_ref,
        target_categories=list(target_categories),
    )
    session.add(payment)
    await session.commit()
    return payment.id


async def seed_paid_charge(
    session: AsyncSession,
    category: str,
    amount_cents: int,
    payment_id: Optional[str] = None,
    rental_id: str = RENTAL_ID,
) -> str:
    """Seed a fully paid ledger charge, optionally applied from a payment."""
    entry = LedgerEntryModel(
        rental_id=rental_id,
        customer_id=CUSTOMER_ID,
        tenant_id=TENANT_ID,
        type="charge",
        category=category,
        amount_cents=amount_cents,
        remaining_cents=0,
        entry_date=date(2024, 1, 15),
    )
    session.add(entry)
    await session.flush()

    if payment_id is not None:
        session.add(
            PaymentApplicationModel(
                payment_id=payment_id,
                charge_entry_id=entry.id,
                amount_applied_cents=amount_cents,
            )
        )
    await session.commit()
    return entry.id


async def seed_active_plan(
    session: AsyncSession,
    amounts: Optional[Sequence[int]] = None,
    total_installable_cents: int = 30000,
    number_of_installments: int = 3,
    start_date: date = date(2024, 1, 15),
    plan_type: PlanType = PlanType.MONTHLY,
    rental_id: str = RENTAL_ID,
    customer_id: str = CUSTOMER_ID,
    tenant_id: str = TENANT_ID,
    with_card: bool = True,
    max_retry_attempts: Optional[int] = None,
    retry_interval_days: Optional[int] = None,
) -> InstallmentPlan:
    """Build and persist an active plan, optionally overriding installment amounts."""
    plan = InstallmentPlanBuilder(PostgresPlanRepository(session)).build(
        PlanRequest(
            rental_id=rental_id,
            tenant_id=tenant_id,
            customer_id=customer_id,
            upfront_base_cents=20000,
            total_installable_cents=total_installable_cents,
            plan_type=plan_type,
            number_of_installments=number_of_installments,
            start_date=start_date,
            max_retry_attempts=max_retry_attempts,
            retry_interval_days=retry_interval_days,
        )
    )
    if amounts is not None:
        for installment, amount in zip(plan.installments, amounts):
            installment.amount_cents = amount
        plan.total_installable_cents = sum(amounts)

    plan.status = PlanStatus.ACTIVE
    plan.upfront_paid = True
    if with_card:
        plan.processor_customer_ref = CUSTOMER_REF
        plan.processor_payment_method_ref = PAYMENT_METHOD_REF

    await PostgresPlanRepository(session).save(plan)
    await session.commit()
    return plan


async def fetch_all(session: AsyncSession, model, *criteria):
    """Fresh rows for assertions, bypassing stale identity-map state."""
    result = await session.execute(
        select(model).where(*criteria).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def fetch_one(session: AsyncSession, model, *criteria):
    rows = await fetch_all(session, model, *criteria)
    assert len(rows) == 1, f"expected one {model.__tablename__} row, found {len(rows)}"
    return rows[0]
