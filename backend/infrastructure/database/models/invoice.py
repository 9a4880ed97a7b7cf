"""
Invoice and fee database models.
"""

from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    FINALIZED = "finalized"
    VOIDED = "voided"


class PaymentStatus(str, Enum):
    """Payment status of a payable (invoice or payment request)."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Invoice(Base, TimestampMixin):
    """Customer invoice for one billing period of a subscription."""

    __tablename__ = "invoices"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=InvoiceStatus.FINALIZED.value,
        nullable=False,
    )
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING.value,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    fees_amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    vat_amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    payment_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ready_for_payment_processing: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Billing period
    from_date: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)
    to_date: Mapped[Optional[date_type]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("ix_invoices_org_payment_status", "organization_id", "payment_status"),
    )

    @property
    def payment_succeeded(self) -> bool:
        return self.payment_status == PaymentStatus.SUCCEEDED.value

    @property
    def payment_failed(self) -> bool:
        return self.payment_status == PaymentStatus.FAILED.value

    @property
    def voided(self) -> bool:
        return self.status == InvoiceStatus.VOIDED.value

    def increment_payment_attempts(self) -> None:
        self.payment_attempts = (self.payment_attempts or 0) + 1

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id!r}, total_amount_cents={self.total_amount_cents}, "
            f"payment_status={self.payment_status!r})>"
        )


class Fee(Base, TimestampMixin):
    """Amount billed on an invoice for one usage-based charge."""

    __tablename__ = "fees"

    id: Mapped[str] = uuid_pk()

    invoice_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    charge_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("charges.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    vat_amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    units: Mapped[Decimal] = mapped_column(Numeric(30, 10), default=Decimal("0"), nullable=False)
    events_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_fees_invoice_charge", "invoice_id", "charge_id", unique=True),
    )

    def compute_vat(self) -> None:
        """Set vat_amount_cents from amount_cents and vat_rate."""
        vat = Decimal(self.amount_cents) * Decimal(self.vat_rate or 0) / Decimal(100)
        self.vat_amount_cents = int(vat.to_integral_value())

    @property
    def total_amount_cents(self) -> int:
        return self.amount_cents + self.vat_amount_cents

    def __repr__(self) -> str:
        return f"<Fee(charge_id={self.charge_id!r}, amount_cents={self.amount_cents}, units={self.units})>"
