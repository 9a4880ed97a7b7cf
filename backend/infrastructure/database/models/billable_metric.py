"""
Billable metric database model.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, uuid_pk


class AggregationType(str, Enum):
    """How events of a metric are aggregated into billable units."""

    COUNT = "count_agg"
    SUM = "sum_agg"
    MAX = "max_agg"
    UNIQUE_COUNT = "unique_count_agg"
    WEIGHTED_SUM = "weighted_sum_agg"
    LATEST = "latest_agg"


class RoundingFunction(str, Enum):
    ROUND = "round"
    CEIL = "ceil"
    FLOOR = "floor"


class WeightedInterval(str, Enum):
    SECONDS = "seconds"


class BillableMetric(Base, TimestampMixin):
    """Definition of a usage metric, identified by the event code it aggregates."""

    __tablename__ = "billable_metrics"

    id: Mapped[str] = uuid_pk()

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    aggregation_type: Mapped[str] = mapped_column(
        String(50),
        default=AggregationType.COUNT.value,
        nullable=False,
    )
    field_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expression: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    rounding_function: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    rounding_precision: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weighted_interval: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # [{"key": "region", "values": ["eu", "us"]}, ...]
    filters: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Soft delete
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_billable_metrics_org_code", "organization_id", "code"),
    )

    def __repr__(self) -> str:
        return f"<BillableMetric(code={self.code!r}, aggregation_type={self.aggregation_type!r})>"
