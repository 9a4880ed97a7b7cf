"""
Payment request database model.

A payment request groups several overdue invoices of one customer into a
single amount to collect.
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, String, Table
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk
from .invoice import PaymentStatus

payment_request_invoices = Table(
    "payment_request_invoices",
    Base.metadata,
    Column(
        "payment_request_id",
        UUID(as_uuid=False),
        ForeignKey("payment_requests.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "invoice_id",
        UUID(as_uuid=False),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class PaymentRequest(Base, TimestampMixin):
    """Request for payment of a batch of invoices."""

    __tablename__ = "payment_requests"

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

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    payment_status: Mapped[str] = mapped_column(
        String(50),
        default=PaymentStatus.PENDING.value,
        nullable=False,
    )
    payment_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ready_for_payment_processing: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def total_amount_cents(self) -> int:
        return self.amount_cents

    @property
    def currency(self) -> str:
        return self.amount_currency

    @property
    def payment_succeeded(self) -> bool:
        return self.payment_status == PaymentStatus.SUCCEEDED.value

    @property
    def payment_failed(self) -> bool:
        return self.payment_status == PaymentStatus.FAILED.value

    def increment_payment_attempts(self) -> None:
        self.payment_attempts = (self.payment_attempts or 0) + 1

    def __repr__(self) -> str:
        return (
            f"<PaymentRequest(id={self.id!r}, amount_cents={self.amount_cents}, "
            f"payment_status={self.payment_status!r})>"
        )
