"""SQLAlchemy ORM models for billing entities."""

from datetime import datetime, date
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class TenantModel(Base):
    """Tenant payment settings, owned by the tenant admin side."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    processor_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    merchant_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CustomerModel(Base):
    """Renter with a lazily created processor profile."""

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    processor_customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)


class VehicleModel(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Available")


class RentalModel(Base):
    __tablename__ = "rentals"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Pending")
    approval_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    payment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class RentalChargeModel(Base):
    """A charge billed to a rental (rent, tax, fees)."""

    __tablename__ = "rental_charges"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    rental_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Unpaid")


class InstallmentPlanModel(Base):
    """Persisted installment plan record."""

    __tablename__ = "installment_plans"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    rental_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    plan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    number_of_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    installment_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    upfront_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_installable_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    upfront_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    upfront_payment_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    paid_installments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processor_customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processor_payment_method_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending", index=True)
    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )

    installments: Mapped[list["ScheduledInstallmentModel"]] = relationship(
        "ScheduledInstallmentModel",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="ScheduledInstallmentModel.installment_number",
    )


class ScheduledInstallmentModel(Base):
    """Persisted installment record within a plan."""

    __tablename__ = "scheduled_installments"
    __table_args__ = (
        UniqueConstraint("plan_id", "installment_number", name="uq_installment_number"),
    )

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    plan_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("installment_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rental_id: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="scheduled",
        index=True,
    )
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processor_payment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processor_charge_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )

    plan: Mapped["InstallmentPlanModel"] = relationship(
        "InstallmentPlanModel",
        back_populates="installments",
    )


class PaymentModel(Base):
    """Persisted payment record."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    rental_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False, default="Card")
    payment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Pending")
    capture_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    refund_status: Mapped[str] = mapped_column(String(50), nullable=False, default="none")
    processor_session_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    processor_intent_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    processor_refund_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    refund_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    target_categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )


class LedgerEntryModel(Base):
    """Signed ledger line for a rental."""

    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    rental_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tenant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )


class PaymentApplicationModel(Base):
    """Amount of a payment applied to a ledger charge."""

    __tablename__ = "payment_applications"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    payment_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    charge_entry_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("ledger_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount_applied_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    charge_entry: Mapped["LedgerEntryModel"] = relationship("LedgerEntryModel")


class InstallmentNotificationModel(Base):
    """Notification already sent for an installment."""

    __tablename__ = "installment_notifications"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    installment_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )
