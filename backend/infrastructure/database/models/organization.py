"""
Organization database model.
"""

from decimal import Decimal
from secrets import token_urlsafe

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


def _generate_api_key() -> str:
    return token_urlsafe(32)


class Organization(Base, TimestampMixin):
    """Billing tenant. Owns customers, metrics, providers and webhook endpoints."""

    __tablename__ = "organizations"

    id: Mapped[str] = uuid_pk()

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Bearer credential for the public API; also the HMAC key of outgoing webhooks
    api_key: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        default=_generate_api_key,
    )

    # Default VAT rate (percent) applied when a customer has none
    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)

    def __repr__(self) -> str:
        return f"<Organization(id={self.id!r}, name={self.name!r})>"
