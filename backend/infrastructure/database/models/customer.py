"""
Customer database model.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class Customer(Base, TimestampMixin):
    """A billed customer of an organization."""

    __tablename__ = "customers"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identifier in the organization's own system
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Contact / billing details
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    firstname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    lastname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    legal_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    tax_identification_number: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    # Overrides the organization VAT rate when set
    vat_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # Payment provider wiring
    payment_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_provider_code: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "external_id", name="uq_customers_org_external_id"),
    )

    def applicable_vat_rate(self, organization_vat_rate: Decimal) -> Decimal:
        """VAT rate to bill this customer with."""
        if self.vat_rate is not None:
            return Decimal(self.vat_rate)
        return Decimal(organization_vat_rate or 0)

    def __repr__(self) -> str:
        return f"<Customer(id={self.id!r}, external_id={self.external_id!r})>"
