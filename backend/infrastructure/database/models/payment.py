"""
Payment database model.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class PayableType(str, Enum):
    """Entity types a payment can settle. Values are the webhook type tags."""

    INVOICE = "Invoice"
    PAYMENT_REQUEST = "PaymentRequest"


class Payment(Base, TimestampMixin):
    """A payment attempt at the provider for one payable."""

    __tablename__ = "payments"

    id: Mapped[str] = uuid_pk()

    # Polymorphic payable reference
    payable_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payable_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    payment_provider_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("payment_providers.id", ondelete="SET NULL"),
        nullable=True,
    )
    payment_provider_customer_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("moneyhash_customers.id", ondelete="SET NULL"),
        nullable=True,
    )

    amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    amount_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Raw provider status (e.g. processing, succeeded, failed, UNPROCESSED)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Moneyhash intent id
    provider_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)

    __table_args__ = (
        Index("ix_payments_payable", "payable_type", "payable_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(provider_payment_id={self.provider_payment_id!r}, "
            f"payable_type={self.payable_type!r}, status={self.status!r})>"
        )
