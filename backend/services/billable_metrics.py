"""
Billable metric management.
"""

import logging
import math
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundFailure, ValidationFailure
from core.expressions import ExpressionError, evaluate_expression, format_value, parse_expression
from infrastructure.database.models import AggregationType, BillableMetric, RoundingFunction, WeightedInterval

logger = logging.getLogger(__name__)

AGGREGATION_TYPES = {item.value for item in AggregationType}
ROUNDING_FUNCTIONS = {item.value for item in RoundingFunction}
WEIGHTED_INTERVALS = {item.value for item in WeightedInterval}

EDITABLE_FIELDS = (
    "name",
    "code",
    "description",
    "aggregation_type",
    "field_name",
    "expression",
    "recurring",
    "rounding_function",
    "rounding_precision",
    "weighted_interval",
    "filters",
)


def validate_metric(values: dict[str, Any]) -> dict[str, list[str]]:
    """Return field errors for a complete set of metric attributes."""
    errors: dict[str, list[str]] = {}

    def add(field: str, code: str) -> None:
        errors.setdefault(field, []).append(code)

    if not values.get("name"):
        add("name", "value_is_mandatory")
    if not values.get("code"):
        add("code", "value_is_mandatory")

    aggregation_type = values.get("aggregation_type")
    if aggregation_type not in AGGREGATION_TYPES:
        add("aggregation_type", "value_is_invalid")
    elif aggregation_type != AggregationType.COUNT.value and not values.get("field_name"):
        add("field_name", "value_is_mandatory")

    weighted_interval = values.get("weighted_interval")
    if aggregation_type == AggregationType.WEIGHTED_SUM.value:
        if weighted_interval not in WEIGHTED_INTERVALS:
            add("weighted_interval", "value_is_invalid")
    elif weighted_interval:
        add("weighted_interval", "value_is_invalid")

    rounding_function = values.get("rounding_function")
    if rounding_function and rounding_function not in ROUNDING_FUNCTIONS:
        add("rounding_function", "value_is_invalid")

    expression = values.get("expression")
    if expression:
        try:
            parse_expression(expression)
        except ExpressionError:
            add("expression", "invalid_expression")

    filters = values.get("filters") or []
    if not isinstance(filters, list) or any(
        not isinstance(item, dict) or not item.get("key") or not item.get("values") for item in filters
    ):
        add("filters", "value_is_invalid")

    return errors


def pagination_meta(page: int, per_page: int, total_count: int) -> dict[str, Any]:
    total_pages = math.ceil(total_count / per_page) if per_page else 0
    return {
        "current_page": page,
        "next_page": page + 1 if page < total_pages else None,
        "prev_page": page - 1 if page > 1 else None,
        "total_pages": total_pages,
        "total_count": total_count,
    }


class BillableMetricService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _active(self, organization_id: str):
        return select(BillableMetric).where(
            BillableMetric.organization_id == organization_id,
            BillableMetric.deleted_at.is_(None),
        )

    async def _code_taken(self, organization_id: str, code: str, exclude_id: str | None = None) -> bool:
        query = self._active(organization_id).where(BillableMetric.code == code)
        if exclude_id:
            query = query.where(BillableMetric.id != exclude_id)
        return (await self.db.execute(query.limit(1))).scalar_one_or_none() is not None

    async def get_by_code(self, organization_id: str, code: str) -> BillableMetric:
        result = await self.db.execute(self._active(organization_id).where(BillableMetric.code == code))
        metric = result.scalar_one_or_none()
        if metric is None:
            raise NotFoundFailure("billable_metric")
        return metric

    async def list_metrics(self, organization_id: str, page: int = 1, per_page: int = 20) -> tuple[list[BillableMetric], dict[str, Any]]:
        total_count = (
            await self.db.execute(
                select(func.count(BillableMetric.id)).where(
                    BillableMetric.organization_id == organization_id,
                    BillableMetric.deleted_at.is_(None),
                )
            )
        ).scalar_one()

        result = await self.db.execute(
            self._active(organization_id)
            .order_by(BillableMetric.created_at.desc(), BillableMetric.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), pagination_meta(page, per_page, total_count)

    async def create(self, organization_id: str, params: dict[str, Any]) -> BillableMetric:
        """
        Raises:
            ValidationFailure: Invalid attributes or duplicated code
        """
        values = {field: params.get(field) for field in EDITABLE_FIELDS}
        values["recurring"] = bool(values["recurring"])
        values["filters"] = values["filters"] or []
        values["aggregation_type"] = values["aggregation_type"] or AggregationType.COUNT.value

        errors = validate_metric(values)
        if values.get("code") and await self._code_taken(organization_id, values["code"]):
            errors.setdefault("code", []).append("value_already_exist")
        if errors:
            raise ValidationFailure(errors)

        metric = BillableMetric(organization_id=organization_id, **values)
        self.db.add(metric)
        await self.db.commit()

        logger.info("Billable metric %s created", metric.code, extra={"organization_id": organization_id})
        return metric

    async def update(self, organization_id: str, code: str, params: dict[str, Any]) -> BillableMetric:
        """
        Update a metric. Keys absent from params keep their value.

        Raises:
            NotFoundFailure: Unknown or deleted metric
            ValidationFailure: Invalid attributes or duplicated code
        """
        metric = await self.get_by_code(organization_id, code)

        values = {field: getattr(metric, field) for field in EDITABLE_FIELDS}
        values.update({field: params[field] for field in EDITABLE_FIELDS if field in params})
        values["filters"] = values["filters"] or []
        values["recurring"] = bool(values["recurring"])

        errors = validate_metric(values)
        if values.get("code") and values["code"] != metric.code and await self._code_taken(
            organization_id, values["code"], metric.id
        ):
            errors.setdefault("code", []).append("value_already_exist")
        if errors:
            raise ValidationFailure(errors)

        for field, value in values.items():
            setattr(metric, field, value)
        await self.db.commit()
        return metric

    async def destroy(self, organization_id: str, code: str) -> BillableMetric:
        """Soft delete: the metric keeps its row but can no longer be found."""
        metric = await self.get_by_code(organization_id, code)
        metric.deleted_at = datetime.now(UTC)
        await self.db.commit()
        return metric


def evaluate_metric_expression(expression: str | None, event: dict[str, Any] | None) -> str:
    """
    Evaluate an expression against a sample event.

    Raises:
        ValidationFailure: Blank or invalid expression
    """
    if not expression or not expression.strip():
        raise ValidationFailure.single("expression", "value_is_mandatory")

    try:
        value = evaluate_expression(expression, event or {})
    except ExpressionError as e:
        logger.info("Expression evaluation failed: %s", e)
        raise ValidationFailure.single("expression", "invalid_expression") from e
    return format_value(value)
