"""
Payment provider and provider-customer database models.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class PaymentProviderType(str, Enum):
    """Supported payment providers."""

    MONEYHASH = "moneyhash"


class PaymentProvider(Base, TimestampMixin):
    """A payment gateway connection configured by an organization."""

    __tablename__ = "payment_providers"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    provider_type: Mapped[str] = mapped_column(
        String(50),
        default=PaymentProviderType.MONEYHASH.value,
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Fernet-encrypted provider API key (see core.security.encryption)
    encrypted_api_key: Mapped[str] = mapped_column(Text, nullable=False)

    # Redirects handed to the hosted payment page
    success_redirect_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    failed_redirect_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    pending_redirect_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    webhook_redirect_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_payment_providers_org_code"),
    )

    def __repr__(self) -> str:
        return f"<PaymentProvider(code={self.code!r}, type={self.provider_type!r})>"


class MoneyhashCustomer(Base, TimestampMixin):
    """Link between a customer and its Moneyhash customer record."""

    __tablename__ = "moneyhash_customers"

    id: Mapped[str] = uuid_pk()

    customer_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payment_provider_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("payment_providers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Moneyhash identifiers
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<MoneyhashCustomer(customer_id={self.customer_id!r}, "
            f"provider_customer_id={self.provider_customer_id!r})>"
        )
