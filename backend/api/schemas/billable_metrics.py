"""
Billable metric request/response schemas.

Input fields are all optional: presence and value checks are done by the
service so that errors come back as field error codes.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from infrastructure.database.models import BillableMetric


class BillableMetricFilter(BaseModel):
    key: str
    values: list[str]


class BillableMetricInput(BaseModel):
    name: str | None = None
    code: str | None = None
    description: str | None = None
    aggregation_type: str | None = Field(None, description="count_agg, sum_agg, max_agg, unique_count_agg, ...")
    field_name: str | None = Field(None, description="Event property aggregated (not used by count_agg)")
    expression: str | None = Field(None, description="Expression computing the event value")
    recurring: bool | None = None
    rounding_function: str | None = Field(None, description="round, ceil or floor")
    rounding_precision: int | None = None
    weighted_interval: str | None = Field(None, description="Only 'seconds', for weighted_sum_agg")
    filters: list[BillableMetricFilter] | None = None


class BillableMetricRequest(BaseModel):
    billable_metric: BillableMetricInput


class BillableMetricObject(BaseModel):
    lago_id: str
    name: str
    code: str
    description: str | None = None
    aggregation_type: str
    field_name: str | None = None
    expression: str | None = None
    recurring: bool
    rounding_function: str | None = None
    rounding_precision: int | None = None
    weighted_interval: str | None = None
    filters: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_model(cls, metric: BillableMetric) -> "BillableMetricObject":
        return cls(
            lago_id=metric.id,
            name=metric.name,
            code=metric.code,
            description=metric.description,
            aggregation_type=metric.aggregation_type,
            field_name=metric.field_name,
            expression=metric.expression,
            recurring=metric.recurring,
            rounding_function=metric.rounding_function,
            rounding_precision=metric.rounding_precision,
            weighted_interval=metric.weighted_interval,
            filters=metric.filters or [],
            created_at=metric.created_at,
        )


class BillableMetricResponse(BaseModel):
    billable_metric: BillableMetricObject


class PaginationMeta(BaseModel):
    current_page: int
    next_page: int | None = None
    prev_page: int | None = None
    total_pages: int
    total_count: int


class BillableMetricListResponse(BaseModel):
    billable_metrics: list[BillableMetricObject]
    meta: PaginationMeta


class EvaluationEvent(BaseModel):
    """Sample event the expression is evaluated against."""

    model_config = ConfigDict(extra="allow")

    code: str | None = None
    timestamp: int | float | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class EvaluateExpressionRequest(BaseModel):
    expression: str | None = None
    event: EvaluationEvent = Field(default_factory=EvaluationEvent)


class ExpressionResult(BaseModel):
    value: str


class EvaluateExpressionResponse(BaseModel):
    expression_result: ExpressionResult
