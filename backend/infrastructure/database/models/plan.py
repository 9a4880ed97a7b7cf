"""
Plan and charge database models.
"""

from enum import Enum

from sqlalchemy import JSON, BigInteger, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class PlanInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ChargeModel(str, Enum):
    """Pricing model applied to aggregated units."""

    STANDARD = "standard"
    GRADUATED = "graduated"
    PACKAGE = "package"


class Plan(Base, TimestampMixin):
    """Subscription plan: a base price plus usage-based charges."""

    __tablename__ = "plans"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    interval: Mapped[str] = mapped_column(String(20), default=PlanInterval.MONTHLY.value, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    @property
    def yearly_amount_cents(self) -> int:
        if self.interval == PlanInterval.YEARLY.value:
            return self.amount_cents
        return self.amount_cents * 12

    def __repr__(self) -> str:
        return f"<Plan(code={self.code!r}, interval={self.interval!r})>"


class Charge(Base, TimestampMixin):
    """Usage-based charge of a plan on one billable metric."""

    __tablename__ = "charges"

    id: Mapped[str] = uuid_pk()

    plan_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    billable_metric_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("billable_metrics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    charge_model: Mapped[str] = mapped_column(String(50), default=ChargeModel.STANDARD.value, nullable=False)
    amount_currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    # Model specific pricing, amounts are decimal strings in currency units
    properties: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    def __repr__(self) -> str:
        return f"<Charge(id={self.id!r}, charge_model={self.charge_model!r})>"
